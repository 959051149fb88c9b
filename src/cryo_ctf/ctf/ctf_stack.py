import json
import time
import logging
from typing import Tuple, Union
import numpy as np
import torch
from tqdm import tqdm

from cryo_ctf.ctf.ctf import CTFParams, calculate_ctf_2d
from cryo_ctf.ctf.check_ctf_config import check_ctf_params


def setup_logging(debug: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _per_tilt_values(config: dict) -> Tuple[list, list]:
    defoci = config["DEFOCUS"]
    exposures = config["EXPOSURE"]
    if not isinstance(defoci, list) and not isinstance(exposures, list):
        return [defoci], [exposures]
    if not isinstance(defoci, list):
        defoci = [defoci] * len(exposures)
    if not isinstance(exposures, list):
        exposures = [exposures] * len(defoci)
    return defoci, exposures


def compute_ctf_stack(
    config: dict,
    image_size: Tuple[int, int],
    pixel_size: Union[float, None] = None,
    half_grid: bool = False,
    calc_centered: bool = False,
    radial_weight: bool = False,
    device: str = "cpu",
) -> torch.Tensor:
    """
    Computes one CTF per tilt of a tilt series.

    Args:
        config (dict): CTF config, DEFOCUS and EXPOSURE may be per tilt lists.
        image_size (tuple): Real space image size (width, height) in pixels.
        pixel_size (float, optional): Pixel size in Å, defaults to config["PIXEL_SIZE"].
        half_grid (bool, optional): Store only the non-redundant half of the x axis.
        calc_centered (bool, optional): Zero frequency in the center of the grid.
        radial_weight (bool, optional): Weight each cell by |x| + 1.
        device (str, optional): Device to compute on. Defaults to "cpu".

    Returns:
        torch.Tensor: CTF stack of shape (num_tilts, height, stored width).
    """
    config = check_ctf_params(config)
    if pixel_size is None:
        pixel_size = config["PIXEL_SIZE"]

    width, height = image_size
    dims = (width // 2 + 1 if half_grid else width, height)
    half_dims = (width // 2, height // 2)
    fourier_voxel_size = (1.0 / (width * pixel_size), 1.0 / (height * pixel_size))

    defoci, exposures = _per_tilt_values(config)
    logging.debug(f"Grid {dims}, Fourier voxel size {fourier_voxel_size}")

    ctfs = []
    for defocus, exposure in tqdm(zip(defoci, exposures), total=len(defoci), unit="tilt"):
        params = CTFParams.from_config(config, defocus=defocus, is_half_grid=half_grid)
        ctfs.append(
            calculate_ctf_2d(
                dims,
                half_dims,
                params,
                fourier_voxel_size,
                calc_centered=calc_centered,
                radial_weight=radial_weight,
                total_exposure=exposure,
                device=device,
            )
        )

    return torch.stack(ctfs, dim=0)


def save_ctf_stack(ctf_stack: torch.Tensor, output_file: str) -> None:
    if output_file.endswith("npy"):
        np.save(output_file, ctf_stack.cpu().numpy())
    elif output_file.endswith("pt"):
        torch.save(ctf_stack.cpu(), output_file)
    else:
        raise NotImplementedError(
            "Output file format not supported. Please use .npy or .pt."
        )


def ctf_stack_from_config_file(
    ctf_config_file: str,
    output_file: str,
    image_size: Tuple[int, int],
    pixel_size: Union[float, None] = None,
    half_grid: bool = False,
    calc_centered: bool = False,
    radial_weight: bool = False,
    device: str = "cpu",
    debug: bool = False,
) -> None:
    setup_logging(debug)

    config = json.load(open(ctf_config_file))

    start_time = time.time()
    ctf_stack = compute_ctf_stack(
        config,
        image_size,
        pixel_size=pixel_size,
        half_grid=half_grid,
        calc_centered=calc_centered,
        radial_weight=radial_weight,
        device=device,
    )
    duration = time.time() - start_time

    save_ctf_stack(ctf_stack, output_file)
    logging.info(
        f"Computed {ctf_stack.shape[0]} CTFs of shape {tuple(ctf_stack.shape[1:])} in {duration:.2f} seconds."
    )
    logging.info(f"Saved CTF stack to {output_file}")
