import math
from dataclasses import replace
import pytest
import torch
from cryo_ctf.ctf.ctf import (
    CTFParams,
    _compute_dtype,
    apply_ctf,
    calculate_ctf_2d,
    electron_wavelength,
    evaluate_ctf,
    exposure_filter,
)


def reference_ctf(x, y, params, voxel_size, radial_weight=False, total_exposure=0.0):
    freq_x = x * voxel_size[0]
    freq_y = y * voxel_size[1]
    phi = math.atan2(freq_y, freq_x)
    r2 = freq_x**2 + freq_y**2
    defocus = params.defocus1 + params.defocus2 * math.cos(
        2 * (phi - params.astigmatism_angle)
    )
    t1 = math.pi / 2 * params.cs * params.wavelength**3
    t2 = math.pi * params.wavelength
    value = math.sin(t1 * r2**2 + t2 * r2 * defocus + params.amplitude_contrast)
    if params.is_squared_ctf:
        value = value**2
    if radial_weight:
        value *= abs(x) + 1
    if r2 > 0:
        value *= math.exp(
            -0.5 * total_exposure / (0.245 * r2**-0.8325 + 2.81)
        )
    return value


@pytest.fixture
def params():
    return CTFParams(
        cs=2.7e7,
        wavelength=0.0197,
        defocus1=20000.0,
        defocus2=20000.0,
        astigmatism_angle=0.0,
        amplitude_contrast=0.07,
    )


def test_four_by_four_scenario(params):
    out = evaluate_ctf((4, 4), (2, 2), params, (0.25, 0.25))
    assert out.shape == torch.Size([16])
    assert out.dtype == torch.float32

    assert out[0].item() == pytest.approx(math.sin(0.07), rel=1e-5)
    for y in range(4):
        for x in range(4):
            fx = x - 4 if x > 2 else x
            fy = y - 4 if y > 2 else y
            expected = reference_ctf(fx, fy, params, (0.25, 0.25))
            assert out[y * 4 + x].item() == pytest.approx(expected, rel=1e-5, abs=1e-6)


def test_zero_frequency_is_finite_with_exposure():
    params = CTFParams(
        cs=2.7e7,
        wavelength=0.0197,
        defocus1=0.0,
        defocus2=0.0,
        astigmatism_angle=0.0,
        amplitude_contrast=0.07,
    )
    out = evaluate_ctf((4, 4), (2, 2), params, (0.25, 0.25), total_exposure=50.0)
    assert torch.isfinite(out).all()
    assert out[0].item() == pytest.approx(math.sin(0.07), rel=1e-6)


def test_point_symmetry(params):
    out = calculate_ctf_2d((5, 5), (2, 2), params, (0.2, 0.2), total_exposure=10.0)
    flipped = torch.roll(torch.flip(out, dims=[0, 1]), shifts=(1, 1), dims=(0, 1))
    assert torch.allclose(out, flipped, atol=1e-6)


def test_squared_ctf(params):
    squared = replace(params, is_squared_ctf=True)
    out = evaluate_ctf((8, 8), (4, 4), params, (0.1, 0.1))
    out_squared = evaluate_ctf((8, 8), (4, 4), squared, (0.1, 0.1))
    assert (out_squared >= 0).all()
    assert torch.allclose(out_squared, out**2, rtol=1e-6, atol=1e-7)


def test_exposure_filter_decreases():
    r2 = torch.tensor([0.01, 0.05, 0.1, 0.25], dtype=torch.float64)
    previous = exposure_filter(r2, 0.0)
    assert torch.all(previous == 1.0)
    for total_exposure in [1.0, 10.0, 50.0, 120.0]:
        current = exposure_filter(r2, total_exposure)
        assert torch.all(current < previous)
        previous = current


def test_exposure_filter_zero_frequency():
    envelope = exposure_filter(torch.tensor([0.0, 0.1], dtype=torch.float64), 40.0)
    assert envelope[0].item() == 1.0
    assert envelope[1].item() < 1.0


def test_radial_weight(params):
    plain = calculate_ctf_2d((6, 6), (3, 3), params, (0.1, 0.1))
    weighted = calculate_ctf_2d((6, 6), (3, 3), params, (0.1, 0.1), radial_weight=True)
    x = torch.tensor([0, 1, 2, 3, -2, -1], dtype=torch.float32)
    assert torch.allclose(weighted, plain * (x.abs() + 1), atol=1e-5)


def test_centered_matches_shifted(params):
    no_astigmatism = replace(params, defocus2=0.0)
    centered = calculate_ctf_2d(
        (4, 4), (2, 2), no_astigmatism, (0.25, 0.25), calc_centered=True
    )
    fft_layout = calculate_ctf_2d((4, 4), (2, 2), no_astigmatism, (0.25, 0.25))
    assert torch.allclose(centered, torch.fft.fftshift(fft_layout), atol=1e-6)
    assert centered[2, 2].item() == pytest.approx(math.sin(0.07), rel=1e-6)


def test_half_grid(params):
    half = replace(params, is_half_grid=True)
    full = calculate_ctf_2d((8, 8), (4, 4), params, (0.125, 0.125))
    half_out = calculate_ctf_2d((5, 8), (4, 4), half, (0.125, 0.125))
    assert torch.allclose(half_out, full[:, :5])


def test_half_grid_centered(params):
    half = replace(params, is_half_grid=True)
    out = calculate_ctf_2d((5, 8), (4, 4), half, (0.125, 0.125), calc_centered=True)
    x = 3
    y = 6 - 4
    expected = reference_ctf(x, y, half, (0.125, 0.125))
    assert out[6, 3].item() == pytest.approx(expected, rel=1e-5, abs=1e-6)


def test_out_buffer(params):
    buffer = torch.zeros(12, dtype=torch.float32)
    result = evaluate_ctf((4, 3), (2, 1), params, (0.25, 0.3), out=buffer)
    assert result is buffer
    assert torch.allclose(buffer, evaluate_ctf((4, 3), (2, 1), params, (0.25, 0.3)))


def test_nan_parameters_propagate(params):
    broken = replace(params, defocus1=float("nan"))
    out = evaluate_ctf((4, 4), (2, 2), broken, (0.25, 0.25))
    assert torch.isnan(out[1:]).all()


def test_electron_wavelength():
    assert electron_wavelength(300.0).item() == pytest.approx(0.01969, abs=1e-5)
    assert electron_wavelength(200.0).item() == pytest.approx(0.02508, abs=1e-5)


def test_params_from_config():
    config = {
        "VOLTAGE": 300.0,
        "CS": 2.7,
        "DEFOCUS": 15000.0,
        "DEFOCUS_ASTIGMATISM": 200.0,
        "ASTIGMATISM_ANGLE": 90.0,
        "AMP": 0.1,
        "SQUARED_CTF": True,
    }
    params = CTFParams.from_config(config, defocus=18000.0, is_half_grid=True)
    assert params.cs == pytest.approx(2.7e7)
    assert params.defocus1 == 18000.0
    assert params.defocus2 == 200.0
    assert params.astigmatism_angle == pytest.approx(math.pi / 2)
    assert math.sin(params.amplitude_contrast) == pytest.approx(0.1)
    assert params.is_half_grid is True
    assert params.is_squared_ctf is True


def test_apply_ctf_constant():
    params = CTFParams(
        cs=0.0,
        wavelength=0.0197,
        defocus1=0.0,
        defocus2=0.0,
        astigmatism_angle=0.0,
        amplitude_contrast=0.3,
    )
    images = torch.randn((3, 16, 16))
    filtered = apply_ctf(images, params, pixel_size=1.0)
    assert filtered.shape == images.shape
    assert torch.allclose(filtered, images * math.sin(0.3), atol=1e-5)


@pytest.mark.parametrize("num_pixels", [16, 17])
def test_apply_ctf_half_grid(params, num_pixels):
    no_astigmatism = replace(params, defocus2=0.0)
    half = replace(no_astigmatism, is_half_grid=True)
    images = torch.randn((2, num_pixels, num_pixels))
    full_filtered = apply_ctf(images, no_astigmatism, pixel_size=2.0, total_exposure=20.0)
    half_filtered = apply_ctf(images, half, pixel_size=2.0, total_exposure=20.0)
    assert torch.allclose(full_filtered, half_filtered, atol=1e-4)


def test_compute_dtype():
    assert _compute_dtype("cpu") == torch.float64
    assert _compute_dtype(torch.device("cpu")) == torch.float64
    assert _compute_dtype("mps") == torch.float32
