"""Resolve per-split layer counts against an image's layer total."""

from typing import List, Sequence

from ..exceptions import AllocationError
from ..utils.validator import SENTINEL_COUNT


def allocate(names: Sequence[str], counts: Sequence[int], layer_count: int) -> List[int]:
    """Resolve the layer count of every split.

    At most one split may carry -1, meaning "every layer the other splits
    do not claim"; it must end up with at least one layer.

    Args:
        names: Split names in emission order
        counts: Requested layer count per split
        layer_count: Number of layers in the image

    Returns:
        Resolved counts, parallel to names

    Raises:
        AllocationError: If the counts cannot cover the image exactly
    """
    if len(names) != len(counts):
        raise AllocationError(
            f"Count of names '{len(names)}' isn't equal to count of layers '{len(counts)}'"
        )

    claimed = 0
    remainder_index = None
    for i, (name, count) in enumerate(zip(names, counts)):
        if count == SENTINEL_COUNT:
            if remainder_index is not None:
                raise AllocationError(
                    f"More than 1 split of -1 layers: '{names[remainder_index]}' and '{name}'"
                )
            remainder_index = i
        elif count < SENTINEL_COUNT:
            raise AllocationError(
                f"Layer count of split '{name}' can only be positive or -1, actually {count}"
            )
        else:
            claimed += count

    resolved = list(counts)
    if remainder_index is None:
        if claimed != layer_count:
            raise AllocationError(
                f"Layers per split sum to {claimed}, not equal to real layers {layer_count}"
            )
        return resolved

    if claimed >= layer_count:
        raise AllocationError(
            f"Layers per split sum to {claimed}, leaving nothing of the "
            f"{layer_count} real layers for '{names[remainder_index]}'"
        )
    resolved[remainder_index] = layer_count - claimed
    return resolved


def slice_bounds(resolved: Sequence[int]) -> List[range]:
    """Turn resolved counts into contiguous index ranges over the layer list."""
    bounds = []
    start = 0
    for count in resolved:
        bounds.append(range(start, start + count))
        start += count
    return bounds
