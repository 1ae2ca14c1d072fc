"""
Decode a spherical harmonic coefficient file into six cube map face images.

Example:
    python -m CubeHarmonics.spherical_harmonic.decode_coefficients -i coefficients.json --size 128 --format hdr

Coefficients are expected in [0, 1] radiance units as written by encode_cubemap. LDR faces store
clamp(value * 255) (gamma 1), HDR faces store the decoded radiance.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import torch
from coolname import generate_slug

from ..core.coefficients import decode_to_cubemap, order
from ..core.pixels import PixelFormat
from ..errors import CubeHarmonicsError
from ..utils.io import FileFormat, read_coefficients, write_cubemap

OUTPUT_DIR = "tmp/experiments"

DEFAULT_SIZE = 64


def main(argv=None) -> int:
    """Main function for command line interface."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Output to console
        ]
    )

    parser = argparse.ArgumentParser(
        description="Decode spherical harmonic coefficients into cube map faces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--input", "-i", type=str, required=True, help="Coefficient JSON file")
    parser.add_argument("--output", "-o", type=str,
                        help="Output directory (default: auto-generated folder under the experiments folder)")
    parser.add_argument("--format", choices=FileFormat.names(), default=FileFormat.PNG.value,
                        help="Face image format (default: png)")
    parser.add_argument("--size", type=int, default=DEFAULT_SIZE, help=f"Face resolution (default: {DEFAULT_SIZE})")
    parser.add_argument("--prefix", type=str, default="", help="Prefix of the face file names")
    parser.add_argument("--alpha", action="store_true", help="Also decode the alpha channel")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (DEBUG) logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.size <= 0:
        parser.error("Size must be a positive integer")

    logger = logging.getLogger(__name__)

    output_dir = Path(args.output) if args.output else Path(OUTPUT_DIR) / generate_slug(2)
    output_dir.mkdir(parents=True, exist_ok=True)

    device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    logger.info(f"Using device: {device}")

    try:
        coefficients = read_coefficients(args.input, channels=4 if args.alpha else 3).to(device)
        logger.info(f"Loaded {coefficients.shape[0]} coefficients (order {order(coefficients)}) from {args.input}")

        start_time = time.time()
        pixel_format = PixelFormat.RGBA_FLOAT if args.alpha else PixelFormat.RGB_FLOAT
        cubemap = decode_to_cubemap(coefficients, args.size, pixel_format)
        decode_time = time.time() - start_time
        logger.info(f"Decoding complete in {decode_time:.2f} seconds.")

        start_time = time.time()
        paths = write_cubemap(cubemap, output_dir, args.format, prefix=args.prefix)
        output_time = time.time() - start_time
        logger.info(f"Output writing complete in {output_time:.2f} seconds.")
    except (CubeHarmonicsError, OSError) as e:
        logger.error(str(e))
        return 1

    for path in paths:
        logger.info(f"  {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
