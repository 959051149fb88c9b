from typing import Tuple


def get_min_and_max_density(mrc) -> Tuple[float, float]:
    """
    Returns the minimum and maximum density stored in an MRC image stack header.

    Args:
        mrc: An opened MRC file (e.g. mrcfile.mmap or mrcfile.open) or its header.

    Returns:
        Tuple[float, float]: (min_density, max_density).
    """
    header = getattr(mrc, "header", mrc)
    return float(header.dmin), float(header.dmax)
