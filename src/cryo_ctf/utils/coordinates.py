import math
from typing import Sequence, Tuple, Union
import torch


ORIGINS = (-1, 0, 1, 2)


def _colon(start: float, stop: float, device) -> torch.Tensor:
    """Unit step vector from start up to and including stop, empty if stop < start."""
    count = int(math.floor(stop - start)) + 1
    if count <= 0:
        return torch.empty(0, dtype=torch.float32, device=device)
    return start + torch.arange(count, dtype=torch.float32, device=device)


def _shifted(start: float, n: int, device) -> torch.Tensor:
    """n unit steps from start, the count is exact for any fractional start."""
    return start + torch.arange(n, dtype=torch.float32, device=device)


def _check_flag(name: str, value) -> None:
    if not isinstance(value, bool):
        raise ValueError(f"{name} should be a boolean, got {type(value).__name__}")


def vector_coordinates(
    size: Sequence[int],
    device: Union[str, torch.device] = "cpu",
    origin: int = 1,
    shift: Union[Sequence[float], None] = None,
    normalize: bool = False,
    half: bool = False,
    isotrope: bool = False,
) -> Tuple[torch.Tensor, torch.Tensor, Union[torch.Tensor, None]]:
    """
    Computes the coordinate vectors of a 2D or 3D grid.

    Shifts are applied to the vector limits, normalization to the vectors
    themselves.

    Args:
        size (sequence): Grid size in pixels, (x, y) or (x, y, z).
        device (str, optional): Device of the vectors. Defaults to "cpu".
        origin (int, optional): Origin convention. Defaults to 1.
            -1: zero frequency first (FFT layout).
            0: real origin, between two pixels for even sizes.
            1: right origin, ceil((N + 1) / 2).
            2: left origin.
        shift (sequence, optional): Translation per dimension. Defaults to no shift.
        normalize (bool, optional): Scale the vectors to [-0.5, 0.5].
        half (bool, optional): Only the non-negative half of the x vector (rfft).
        isotrope (bool, optional): Stretch the vectors to the smallest dimension.

    Returns:
        tuple: (vx, vy, vz), vz is None for 2D sizes.
    """
    size = list(size)
    ndim = len(size)
    if ndim not in (2, 3):
        raise ValueError(f"size should have 2 or 3 elements, got {ndim}")
    for n in size:
        if isinstance(n, bool) or n < 0 or int(n) != n:
            raise ValueError(f"size should be non-negative integers, got {size}")
    size = [int(n) for n in size]
    is_3d = ndim == 3

    if isinstance(origin, bool) or origin not in ORIGINS:
        raise ValueError(f"origin should be 0, 1, 2, or -1, got {origin}")

    if shift is None:
        shift = [0.0] * ndim
    else:
        shift = [float(s) for s in shift]
        if len(shift) != ndim or not all(math.isfinite(s) for s in shift):
            raise ValueError(f"shift should be {ndim} finite values, got {shift}")

    _check_flag("normalize", normalize)
    _check_flag("half", half)
    _check_flag("isotrope", isotrope)

    # Limits of the real origin, offset by half a pixel for even sizes otherwise.
    direction = -1 if origin == 2 else 1
    lower, upper = [], []
    for n in size:
        if origin != 0 and n % 2 == 0:
            lower.append(-n / 2 + 0.5 - direction * 0.5)
            upper.append(n / 2 - 0.5 - direction * 0.5)
        else:
            lower.append(-n / 2 + 0.5)
            upper.append(n / 2 - 0.5)

    if origin >= 0:
        if half:
            if any(shift):
                raise ValueError(f"shifts are not allowed with half = True, got {shift}")
            if origin == 0 and size[0] % 2 == 0:
                vx = _colon(0.5, size[0] / 2, device)
            else:
                vx = _colon(0, size[0] // 2, device)
        else:
            vx = _shifted(lower[0] - shift[0], size[0], device)
        vectors = [vx] + [
            _shifted(lower[d] - shift[d], size[d], device)
            for d in range(1, ndim)
        ]
    else:
        if any(shift):
            raise ValueError(f"shifts are not allowed with origin = -1, got {shift}")

        def fft_layout(d):
            return torch.cat([_colon(0, upper[d], device), _colon(lower[d], -1, device)])

        vx = _colon(0, size[0] // 2, device) if half else fft_layout(0)
        vectors = [vx] + [fft_layout(d) for d in range(1, ndim)]

    if isotrope:
        radius = [min(abs(lo), abs(up)) for lo, up in zip(lower, upper)]
        radius_min = min(radius)
        if radius_min == 0:
            raise ValueError(f"isotrope is undefined for size {size} and origin {origin}")
        vectors = [v * (radius_min / r) for v, r in zip(vectors, radius)]
        if normalize:
            size_min = min(size)
            vectors = [v / size_min for v in vectors]
    elif normalize:
        vectors = [v / n for v, n in zip(vectors, size)]

    vz = vectors[2] if is_3d else None
    return vectors[0], vectors[1], vz
