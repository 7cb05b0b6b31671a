from setuptools import setup

with open("README.md") as f:
    long_description = f.read()

setup(
    name="RNAdraw",
    version="0.1.0",
    packages=["rnadraw"],
    package_dir={"": "src"},
    description="Motif trees and 2D circular layouts of RNA secondary structures",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "clashfinder=rnadraw.clashfinder:main",
            "motif-extractor=rnadraw.motif_extractor:main",
            "rna-layout=rnadraw.drawer:main",
        ]
    },
    install_requires=[
        "graphviz",
        "numpy",
        "orjson",
        "pandas",
        "scipy",
    ],
    extras_require={
        "test": [
            "hypothesis",
            "pytest",
        ]
    },
)
