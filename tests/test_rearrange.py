import math

import numpy as np
import pytest

from rnadraw.common import GeometryError, MotifType
from rnadraw.geometry import angle_of, nearest_equivalent, norm, rotate_about
from rnadraw.layout import (
    LayoutCoordinator,
    PlacedHelix,
    PlacedUnpaired,
    layout_structure,
    walk,
)
from rnadraw.rearrange import (
    flip_layout,
    flip_over_baseline,
    rearrange_after_drag,
    rotate_element,
)
from rnadraw.secondary import read_structure


@pytest.fixture
def layout():
    return LayoutCoordinator().run(read_structure("tests/trna.dbn"))


def snapshot(layout):
    return {nt.index: nt.position.copy() for nt in layout.nucleotides}


def middle(interval):
    return (interval[0] + interval[1]) / 2


def assert_intervals_close(actual, expected):
    assert len(actual) == len(expected)
    for (s1, e1), (s2, e2) in zip(actual, expected):
        assert math.isclose(s1, s2, abs_tol=1e-9)
        assert math.isclose(e1, e2, abs_tol=1e-9)


def test_drag_helix(layout):
    (loop,) = layout.loops[MotifType.multi_loop]
    helix = loop.children[3]
    nested = helix.children[0]
    before = list(loop.child_angles)
    nested_center = nested.center.copy()
    nested_start = nested.angle_start
    untouched = {nt.index: nt.position.copy() for nt in loop.children[0].nucleotides}

    rearrange_after_drag(loop, helix, middle(before[3]) + 5.0)

    assert_intervals_close(
        loop.child_angles,
        [
            before[0],
            before[1],
            (before[2][0], before[3][0] + 5.0),
            (before[3][0] + 5.0, before[3][1] + 5.0),
            (before[3][1] + 5.0, before[4][1]),
            before[5],
        ],
    )
    assert np.allclose(nested.center, rotate_about(nested_center, 5.0, loop.center))
    assert math.isclose(nested.angle_start, nested_start + 5.0, abs_tol=1e-9)

    for nt in loop.children[0].nucleotides:
        assert np.allclose(nt.position, untouched[nt.index])
    for index in (2, 4):
        run = loop.children[index]
        start, end = loop.child_angles[index]
        step = (end - start) / (len(run.nucleotides) + 1)
        for k, nt in enumerate(run.nucleotides, 1):
            assert math.isclose(norm(nt.position - loop.center), loop.radius)
            expected = start + k * step
            angle = nearest_equivalent(angle_of(nt.position - loop.center), expected)
            assert math.isclose(angle, expected, abs_tol=1e-6)

    five, three = helix.base_pairs[0]
    assert math.isclose(norm(five.position - loop.center), loop.radius)
    assert math.isclose(norm(three.position - loop.center), loop.radius)


def test_drag_uses_nearest_turn(layout):
    (loop,) = layout.loops[MotifType.multi_loop]
    helix = loop.children[3]
    target = middle(loop.child_angles[3]) + 5.0

    rearrange_after_drag(loop, helix, target + 360.0)
    assert math.isclose(middle(loop.child_angles[3]), target, abs_tol=1e-9)


def test_drag_far_along_free_arc():
    layout = layout_structure("", "GGGAACCAAAAAAAAAAAAC", "(((..))............)")
    (loop,) = layout.loops[MotifType.bulge]
    helix, run = loop.children
    assert isinstance(helix, PlacedHelix)
    middle_before = middle(loop.child_angles[0])
    target = middle_before + 200.0
    half = loop.phi / 2
    assert target + half <= loop.angle_end

    rearrange_after_drag(loop, helix, target)

    assert_intervals_close(
        loop.child_angles,
        [(target - half, target + half), (target + half, loop.angle_end)],
    )
    for nt in helix.base_pairs[0] + tuple(run.nucleotides):
        assert math.isclose(norm(nt.position - loop.center), loop.radius)

    # dragging back across more than half a turn works as well
    rearrange_after_drag(loop, helix, middle_before - 360.0)
    assert math.isclose(middle(loop.child_angles[0]), middle_before, abs_tol=1e-9)
    assert math.isclose(loop.child_angles[1][0], middle_before + half, abs_tol=1e-9)


@pytest.mark.parametrize("index,shift", [(3, 170.0), (1, -80.0), (5, 40.0)])
def test_infeasible_drag(layout, index, shift):
    (loop,) = layout.loops[MotifType.multi_loop]
    helix = loop.children[index]
    before = list(loop.child_angles)
    positions = snapshot(layout)

    with pytest.raises(GeometryError):
        rearrange_after_drag(loop, helix, middle(before[index]) + shift)

    assert loop.child_angles == before
    for i, position in snapshot(layout).items():
        assert np.array_equal(position, positions[i])


def test_flip_once(layout):
    (loop,) = layout.loops[MotifType.multi_loop]
    children = list(loop.children)
    positions = snapshot(layout)

    flip_layout(layout)

    for index, position in snapshot(layout).items():
        assert np.allclose(position, (positions[index][0], -positions[index][1]))
    assert loop.children == children[::-1]
    assert loop.draw_direction == -1
    for start, end in loop.child_angles:
        assert start < end


def test_flip_twice_restores(layout):
    (loop,) = layout.loops[MotifType.multi_loop]
    children = list(loop.children)
    angles = list(loop.child_angles)
    bounds = (loop.angle_start, loop.angle_end)
    positions = snapshot(layout)
    directions = [h.direction.copy() for h in layout.helices]

    flip_layout(layout, 10.0)
    flip_layout(layout, 10.0)

    for index, position in snapshot(layout).items():
        assert np.allclose(position, positions[index])
    assert loop.children == children
    assert loop.draw_direction == 1
    assert_intervals_close(loop.child_angles, angles)
    assert math.isclose(loop.angle_start, bounds[0])
    assert math.isclose(loop.angle_end, bounds[1])
    for helix, direction in zip(layout.helices, directions):
        assert np.allclose(helix.direction, direction)


def test_drag_after_flip(layout):
    (loop,) = layout.loops[MotifType.multi_loop]
    flip_layout(layout)

    # children are reversed, the anticodon stem is still in the middle
    helix = loop.children[2]
    assert isinstance(helix, PlacedHelix)
    rearrange_after_drag(loop, helix, middle(loop.child_angles[2]) - 5.0)

    run = loop.children[1]
    assert isinstance(run, PlacedUnpaired)
    start, end = loop.child_angles[1]
    step = (end - start) / (len(run.nucleotides) + 1)
    # 5' to 3' order runs against increasing angle in a mirrored loop
    for k, nt in enumerate(run.nucleotides, 1):
        assert math.isclose(norm(nt.position - loop.center), loop.radius)
        expected = end - k * step
        angle = nearest_equivalent(angle_of(nt.position - loop.center), expected)
        assert math.isclose(angle, expected, abs_tol=1e-6)


def test_flip_subtree(layout):
    helix, tail = layout.elements
    positions = snapshot(layout)

    flip_over_baseline(helix, 5.0)

    assert np.allclose(helix.direction, (0, 1))
    for element in walk(helix):
        for nt in element.nucleotides:
            x, y = positions[nt.index]
            assert np.allclose(nt.position, (x, 10.0 - y))
    for nt in tail.nucleotides:
        assert np.array_equal(nt.position, positions[nt.index])


def test_rotate_element_is_rigid(layout):
    helix = layout.elements[0]
    points = np.array([nt.position for e in walk(helix) for nt in e.nucleotides])
    before = np.linalg.norm(points[:, None, :] - points[None, :, :], axis=-1)

    rotate_element(helix, 30.0, np.array([5.0, -7.0]))

    points = np.array([nt.position for e in walk(helix) for nt in e.nucleotides])
    after = np.linalg.norm(points[:, None, :] - points[None, :, :], axis=-1)
    assert np.allclose(before, after)
    assert math.isclose(angle_of(helix.direction), -90.0 + 30.0)
