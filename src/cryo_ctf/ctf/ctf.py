import math
from dataclasses import dataclass
from typing import Tuple, Union
import torch


# Critical exposure fit from Grant & Grigorieff (2015), written in terms of the
# squared spatial frequency, hence the halved exponent.
EXPOSURE_A = 0.245
EXPOSURE_B = -0.8325
EXPOSURE_C = 2.81
# Fit is for 300 kV, needs correction for other accelerating voltages (0.8 at 200 kV).
VOLTAGE_SCALE = 1.0


def electron_wavelength(voltage_kv: Union[float, torch.Tensor]) -> torch.Tensor:
    """
    Relativistic electron wavelength.

    Args:
        voltage_kv (float or torch.Tensor): Accelerating voltage in kV.

    Returns:
        torch.Tensor: Wavelength in Å.
    """
    V = torch.as_tensor(voltage_kv, dtype=torch.float64) * 1e3
    return 12.2643 / torch.sqrt(V * (1.0 + 0.978476e-6 * V))


@dataclass(frozen=True)
class CTFParams:
    """
    Parameters of a single CTF evaluation.

    Args:
        cs (float): Spherical aberration in Å.
        wavelength (float): Electron wavelength in Å.
        defocus1 (float): Mean defocus in Å.
        defocus2 (float): Half astigmatism in Å.
        astigmatism_angle (float): Astigmatism angle in radians.
        amplitude_contrast (float): Amplitude contrast expressed as a phase in radians.
        is_half_grid (bool): Only the non-redundant half of the x axis is stored.
        is_squared_ctf (bool): Return the squared CTF.
    """

    cs: float
    wavelength: float
    defocus1: float
    defocus2: float
    astigmatism_angle: float
    amplitude_contrast: float
    is_half_grid: bool = False
    is_squared_ctf: bool = False

    @property
    def cs_term(self) -> float:
        return 0.5 * math.pi * self.cs * self.wavelength**3

    @property
    def df_term(self) -> float:
        return math.pi * self.wavelength

    @classmethod
    def from_config(
        cls,
        config: dict,
        defocus: Union[float, None] = None,
        is_half_grid: bool = False,
    ) -> "CTFParams":
        """
        Builds the parameters from a checked config (see check_ctf_params).

        Args:
            config (dict): Checked CTF config, microscope units (kV, mm, Å, degrees).
            defocus (float, optional): Overrides config["DEFOCUS"], used for tilt series.
            is_half_grid (bool, optional): Half grid storage. Defaults to False.

        Returns:
            CTFParams: Parameters in Å and radians.
        """
        amp = config["AMP"]
        return cls(
            cs=config["CS"] * 1e7,
            wavelength=float(electron_wavelength(config["VOLTAGE"])),
            defocus1=float(config["DEFOCUS"] if defocus is None else defocus),
            defocus2=float(config["DEFOCUS_ASTIGMATISM"]),
            astigmatism_angle=math.radians(config["ASTIGMATISM_ANGLE"]),
            amplitude_contrast=math.atan(amp / math.sqrt(1.0 - amp**2)),
            is_half_grid=is_half_grid,
            is_squared_ctf=bool(config["SQUARED_CTF"]),
        )


def exposure_filter(
    r2: torch.Tensor, total_exposure: float, voltage_scale: float = VOLTAGE_SCALE
) -> torch.Tensor:
    """
    Exposure dependent amplitude envelope.

    The critical exposure diverges at zero frequency, where the envelope is
    defined as 1.

    Args:
        r2 (torch.Tensor): Squared spatial frequency in 1/Å².
        total_exposure (float): Cumulative exposure in e/Å².
        voltage_scale (float, optional): Critical exposure scale for the voltage.

    Returns:
        torch.Tensor: Envelope, same shape as r2.
    """
    r2 = torch.as_tensor(r2)
    nonzero = r2 > 0
    safe_r2 = torch.where(nonzero, r2, torch.ones_like(r2))
    critical_exposure = voltage_scale * (EXPOSURE_A * safe_r2**EXPOSURE_B + EXPOSURE_C)
    envelope = torch.exp(-0.5 * total_exposure / critical_exposure)
    return torch.where(nonzero, envelope, torch.ones_like(envelope))


def _compute_dtype(device: Union[str, torch.device]) -> torch.dtype:
    # mps has no float64 support
    if torch.device(device).type == "mps":
        return torch.float32
    return torch.float64


def evaluate_ctf(
    dims: Tuple[int, int],
    half_dims: Tuple[int, int],
    params: CTFParams,
    fourier_voxel_size: Tuple[float, float],
    calc_centered: bool = False,
    radial_weight: bool = False,
    total_exposure: float = 0.0,
    out: Union[torch.Tensor, None] = None,
    device: Union[str, torch.device] = "cpu",
) -> torch.Tensor:
    """
    Evaluates the CTF on every cell of a 2D Fourier grid.

    Cells are independent, the whole grid is computed as one vectorized
    expression in double precision and written once to a float32 buffer.
    Inputs are not validated, NaN parameters give NaN output. On devices
    without float64 support (mps) the grid is computed in float32.

    Args:
        dims (tuple): Stored grid size (width, height).
        half_dims (tuple): Half grid size (half_x, half_y).
        params (CTFParams): CTF parameters.
        fourier_voxel_size (tuple): Spatial frequency step per pixel (x, y) in 1/Å.
        calc_centered (bool, optional): Zero frequency at half_dims instead of the FFT layout.
        radial_weight (bool, optional): Weight each cell by |x| + 1.
        total_exposure (float, optional): Cumulative exposure in e/Å². Defaults to 0.
        out (torch.Tensor, optional): Flat float32 buffer of length width * height to fill.
        device (str, optional): Device used when out is not given. Defaults to "cpu".

    Returns:
        torch.Tensor: Flat row-major buffer, element y * width + x.
    """
    width, height = dims
    half_x, half_y = half_dims
    if out is not None:
        device = out.device
    dtype = _compute_dtype(device)

    y, x = torch.meshgrid(
        torch.arange(height, dtype=dtype, device=device),
        torch.arange(width, dtype=dtype, device=device),
        indexing="ij",
    )

    if calc_centered:
        y = y - half_y
        if not params.is_half_grid:
            x = x - half_x
    else:
        y = torch.where(y > half_y, y - height, y)
        if not params.is_half_grid:
            x = torch.where(x > half_x, x - width, x)

    freq_x = x * fourier_voxel_size[0]
    freq_y = y * fourier_voxel_size[1]
    phi = torch.atan2(freq_y, freq_x)
    r2 = freq_x**2 + freq_y**2

    defocus = params.defocus1 + params.defocus2 * torch.cos(
        2.0 * (phi - params.astigmatism_angle)
    )
    ctf = torch.sin(
        params.cs_term * r2**2
        + params.df_term * r2 * defocus
        + params.amplitude_contrast
    )

    if params.is_squared_ctf:
        ctf = ctf**2

    if radial_weight:
        ctf = ctf * (torch.abs(x) + 1.0)

    ctf = ctf * exposure_filter(r2, total_exposure)
    ctf = ctf.to(torch.float32).reshape(-1)

    if out is None:
        return ctf
    out.copy_(ctf)
    return out


def calculate_ctf_2d(
    dims: Tuple[int, int],
    half_dims: Tuple[int, int],
    params: CTFParams,
    fourier_voxel_size: Tuple[float, float],
    **kwargs,
) -> torch.Tensor:
    """Same as evaluate_ctf, shaped (height, width)."""
    width, height = dims
    return evaluate_ctf(
        dims, half_dims, params, fourier_voxel_size, **kwargs
    ).reshape(height, width)


def apply_ctf(
    image: torch.Tensor,
    params: CTFParams,
    pixel_size: float,
    total_exposure: float = 0.0,
) -> torch.Tensor:
    """
    Applies the CTF to a batch of square images.

    Args:
        image (torch.Tensor): Images of shape (num_batch, num_pixels, num_pixels).
        params (CTFParams): CTF parameters, is_half_grid selects the rfft path.
        pixel_size (float): Pixel size in Å.
        total_exposure (float, optional): Cumulative exposure in e/Å².

    Returns:
        torch.Tensor: Filtered images, same shape as image.
    """
    num_batch, num_pixels, _ = image.shape
    voxel_size = 1.0 / (num_pixels * pixel_size)
    width = num_pixels // 2 + 1 if params.is_half_grid else num_pixels

    ctf = calculate_ctf_2d(
        (width, num_pixels),
        (num_pixels // 2, num_pixels // 2),
        params,
        (voxel_size, voxel_size),
        total_exposure=total_exposure,
        device=image.device,
    )

    if params.is_half_grid:
        return torch.fft.irfft2(torch.fft.rfft2(image) * ctf, s=image.shape[-2:])
    image_ctf = torch.fft.ifft2(torch.fft.fft2(image) * ctf).real
    return image_ctf
