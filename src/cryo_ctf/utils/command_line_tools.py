import argparse
from cryo_ctf.ctf.ctf_stack import ctf_stack_from_config_file


def cl_ctf_stack():
    cl_parser = argparse.ArgumentParser()

    cl_parser.add_argument(
        "--ctf_config_file", action="store", type=str, required=True
    )
    cl_parser.add_argument("--output_file", action="store", type=str, required=True)
    cl_parser.add_argument("--width", action="store", type=int, required=True)
    cl_parser.add_argument("--height", action="store", type=int, required=True)
    cl_parser.add_argument(
        "--pixel_size",
        action="store",
        type=float,
        required=False,
        default=None,
        help="Pixel size in Å (default: PIXEL_SIZE from the config file)",
    )
    cl_parser.add_argument(
        "--half_grid",
        action="store",
        type=bool,
        nargs="?",
        required=False,
        const=True,
        default=False,
    )
    cl_parser.add_argument(
        "--centered",
        action="store",
        type=bool,
        nargs="?",
        required=False,
        const=True,
        default=False,
    )
    cl_parser.add_argument(
        "--radial_weight",
        action="store",
        type=bool,
        nargs="?",
        required=False,
        const=True,
        default=False,
    )
    cl_parser.add_argument(
        "--device", action="store", type=str, required=False, default="cpu"
    )
    cl_parser.add_argument(
        "--debug",
        action="store",
        type=bool,
        nargs="?",
        required=False,
        const=True,
        default=False,
    )

    args = cl_parser.parse_args()

    ctf_stack_from_config_file(
        ctf_config_file=args.ctf_config_file,
        output_file=args.output_file,
        image_size=(args.width, args.height),
        pixel_size=args.pixel_size,
        half_grid=args.half_grid,
        calc_centered=args.centered,
        radial_weight=args.radial_weight,
        device=args.device,
        debug=args.debug,
    )
