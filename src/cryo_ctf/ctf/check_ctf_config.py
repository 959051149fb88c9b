from copy import deepcopy

default_ctf_config = {
    "VOLTAGE": 300.0,
    "CS": 2.7,
    "DEFOCUS_ASTIGMATISM": 0.0,
    "ASTIGMATISM_ANGLE": 0.0,
    "AMP": 0.07,
    "EXPOSURE": 0.0,
    "SQUARED_CTF": False,
    "PIXEL_SIZE": 1.0,
}


def check_ctf_params(config: dict) -> dict:
    merged = deepcopy(default_ctf_config)
    merged.update(config)

    assert "DEFOCUS" in merged, "Please provide a value for DEFOCUS"
    assert 0.0 <= merged["AMP"] < 1.0, "AMP must be a fraction in [0, 1)"
    assert merged["PIXEL_SIZE"] > 0, "PIXEL_SIZE must be positive"

    for key in ["DEFOCUS", "EXPOSURE"]:
        if isinstance(merged[key], list):
            assert len(merged[key]) > 0, f"{key} list must not be empty"

    # Per tilt lists must line up
    if isinstance(merged["DEFOCUS"], list) and isinstance(merged["EXPOSURE"], list):
        assert len(merged["DEFOCUS"]) == len(
            merged["EXPOSURE"]
        ), "DEFOCUS and EXPOSURE must have the same number of tilts"

    return merged
