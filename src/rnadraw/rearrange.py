import logging
from typing import Optional

from rnadraw.common import GeometryError
from rnadraw.geometry import (
    EPSILON,
    Vector,
    nearest_equivalent,
    point_on_circle,
    reflect_direction,
    reflect_y,
    rotate,
    rotate_about,
)
from rnadraw.layout import (
    Layout,
    PlacedElement,
    PlacedHelix,
    PlacedLoop,
    PlacedUnpaired,
    walk,
)


def rotate_element(element: PlacedElement, angle: float, pivot: Vector):
    """Rotate a placed subtree by ``angle`` degrees about ``pivot``."""
    for current in walk(element):
        for nt in current.nucleotides:
            nt.position = rotate_about(nt.position, angle, pivot)

        if isinstance(current, PlacedHelix):
            current.anchor = rotate_about(current.anchor, angle, pivot)
            current.next_anchor = rotate_about(current.next_anchor, angle, pivot)
            current.direction = rotate(current.direction, angle)
            current.next_direction = rotate(current.next_direction, angle)
        elif isinstance(current, PlacedLoop):
            current.center = rotate_about(current.center, angle, pivot)
            current.angle_start += angle
            current.angle_end += angle
            current.child_angles = [(s + angle, e + angle) for s, e in current.child_angles]
        elif isinstance(current, PlacedUnpaired):
            if current.direction is not None:
                current.direction = rotate(current.direction, angle)
        else:
            raise RuntimeError(f"Unknown placed element: {current}")


def reflow_unpaired(loop: PlacedLoop, index: int, start: float, end: float):
    """Spread the nucleotides of an unpaired child evenly over [start, end]."""
    run = loop.children[index]
    if not isinstance(run, PlacedUnpaired):
        raise RuntimeError(f"Cannot reflow a non-unpaired element: {run}")

    loop.child_angles[index] = (start, end)
    step = (end - start) / (len(run.nucleotides) + 1)
    for k, nt in enumerate(run.nucleotides, 1):
        angle = start + k * step if loop.draw_direction == 1 else end - k * step
        nt.position = point_on_circle(loop.center, loop.radius, angle)


def rearrange_after_drag(loop: PlacedLoop, helix: PlacedHelix, angle: float):
    """Move a helix child so its mouth is centered at ``angle`` on the loop circle.

    The helix and everything inside it is rotated about the loop center, and
    only the unpaired runs immediately before and after it are re-flowed to
    fill the freed or consumed arc.

    Raises:
        GeometryError: If the new position overlaps a neighbouring helix or
            leaves the arc not used by the closing pair.
    """
    index = loop.children.index(helix)
    start, end = loop.child_angles[index]
    middle = (start + end) / 2
    half = loop.phi / 2

    if index > 0:
        previous = loop.children[index - 1]
        bound = loop.child_angles[index - 1]
        lower = bound[0] if isinstance(previous, PlacedUnpaired) else bound[1]
    else:
        previous, lower = None, loop.angle_start
    if index < len(loop.children) - 1:
        following = loop.children[index + 1]
        bound = loop.child_angles[index + 1]
        upper = bound[1] if isinstance(following, PlacedUnpaired) else bound[0]
    else:
        following, upper = None, loop.angle_end

    # the free arc is shorter than a full turn, only one turn of the angle fits
    target = nearest_equivalent(angle, (lower + upper) / 2)

    if target - half < lower - EPSILON or target + half > upper + EPSILON:
        raise GeometryError(
            f"Helix cannot be centered at {angle:.3f}, free arc is "
            f"[{lower:.3f}, {upper:.3f}]"
        )

    logging.debug(f"Moving helix from {middle:.3f} to {target:.3f}")
    rotate_element(helix, target - middle, loop.center)
    loop.child_angles[index] = (target - half, target + half)

    if isinstance(previous, PlacedUnpaired):
        reflow_unpaired(loop, index - 1, lower, target - half)
    if isinstance(following, PlacedUnpaired):
        reflow_unpaired(loop, index + 1, target + half, upper)


def flip_over_baseline(element: PlacedElement, baseline_y: float):
    """Mirror a placed subtree across the line ``y = baseline_y``.

    Loops reverse the order of their children and their draw direction, so
    flipping twice restores the original state.
    """
    for current in list(walk(element)):
        for nt in current.nucleotides:
            nt.position = reflect_y(nt.position, baseline_y)

        if isinstance(current, PlacedHelix):
            current.anchor = reflect_y(current.anchor, baseline_y)
            current.next_anchor = reflect_y(current.next_anchor, baseline_y)
            current.direction = reflect_direction(current.direction)
            current.next_direction = reflect_direction(current.next_direction)
        elif isinstance(current, PlacedLoop):
            current.center = reflect_y(current.center, baseline_y)
            current.draw_direction *= -1
            current.children.reverse()
            current.child_angles = [(-e, -s) for s, e in reversed(current.child_angles)]
            current.angle_start, current.angle_end = (
                -current.angle_end,
                -current.angle_start,
            )
        elif isinstance(current, PlacedUnpaired):
            if current.direction is not None:
                current.direction = reflect_direction(current.direction)
        else:
            raise RuntimeError(f"Unknown placed element: {current}")


def flip_layout(layout: Layout, baseline_y: Optional[float] = None):
    """Mirror a whole layout, by default across the horizontal line of its origin."""
    if baseline_y is None:
        baseline_y = layout.config.origin[1]
    for element in layout.elements:
        flip_over_baseline(element, baseline_y)
