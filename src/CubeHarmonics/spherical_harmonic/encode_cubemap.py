"""
Encode a cube map (six face images) into spherical harmonic coefficients.

Example:
    python -m CubeHarmonics.spherical_harmonic.encode_cubemap \
        --px posx.png --nx negx.png --py posy.png --ny negy.png --pz posz.png --nz negz.png \
        --order 4 --samples 4096 --method spherical -o coefficients.json

LDR faces (png, bmp, tga, jpg) are read as values in [0, 1] (byte / 255, gamma 1), HDR faces keep
their radiance. Coefficients are in those units, 1/255 of tools that integrate raw byte values.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import torch
from coolname import generate_slug

from ..core.coefficients import encode
from ..core.cubemap import CubeMap
from ..core.pixels import PixelFormat
from ..core.sampling import InterpolationMethod, SamplingMethod
from ..errors import CubeHarmonicsError
from ..utils.io import load_cubemap, write_coefficients

OUTPUT_DIR = "tmp/experiments"

DEFAULT_ORDER = 2
DEFAULT_SAMPLES = 64


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
        description="Encode a cube map into spherical harmonic coefficients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--px", type=str, required=True, help="Positive X face image")
    parser.add_argument("--nx", type=str, required=True, help="Negative X face image")
    parser.add_argument("--py", type=str, required=True, help="Positive Y face image")
    parser.add_argument("--ny", type=str, required=True, help="Negative Y face image")
    parser.add_argument("--pz", type=str, required=True, help="Positive Z face image")
    parser.add_argument("--nz", type=str, required=True, help="Negative Z face image")
    parser.add_argument("--output", "-o", type=str,
                        help="Output JSON file (default: auto-generated name under the experiments folder)")
    parser.add_argument("--order", type=int, default=DEFAULT_ORDER,
                        help=f"Highest spherical harmonic band (default: {DEFAULT_ORDER})")
    parser.add_argument("--samples", type=int, default=DEFAULT_SAMPLES,
                        help=f"Sample budget of the spherical / monte-carlo methods (default: {DEFAULT_SAMPLES})")
    parser.add_argument("--method", choices=SamplingMethod.names(), default=SamplingMethod.MONTE_CARLO.value,
                        help="Integration method (default: monte-carlo)")
    parser.add_argument("--filtering", choices=InterpolationMethod.names(), default=InterpolationMethod.BILINEAR.value,
                        help="Cube map filtering used by the spherical / monte-carlo methods (default: linear)")
    parser.add_argument("--alpha", action="store_true", help="Also encode the alpha channel")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (DEBUG) logging")
    args = parser.parse_args(argv)

    # Set logging level based on verbose flag
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.order < 0:
        parser.error("Order must be non negative")
    if args.samples <= 0:
        parser.error("Samples must be a positive integer")

    logger = logging.getLogger(__name__)

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = Path(OUTPUT_DIR) / f"{generate_slug(2)}.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)

    device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    logger.info(f"Using device: {device}")

    pixel_format = PixelFormat.RGBA_FLOAT if args.alpha else PixelFormat.RGB_FLOAT

    try:
        start_time = time.time()
        cubemap = load_cubemap(args.px, args.nx, args.py, args.ny, args.pz, args.nz, pixel_format)
        cubemap = CubeMap.from_tensor(cubemap.stacked.to(device), pixel_format)
        load_time = time.time() - start_time
        logger.info(f"Loaded {cubemap} in {load_time:.2f} seconds.")

        start_time = time.time()
        logger.info(f"Encoding order {args.order} with {args.method} ({args.samples} samples, {args.filtering} filtering)...")
        coefficients = encode(cubemap, args.order, method=args.method, samples=args.samples, filtering=args.filtering)
        encode_time = time.time() - start_time
        logger.info(f"Encoding complete in {encode_time:.2f} seconds.")

        write_coefficients(output_path, coefficients)
    except (CubeHarmonicsError, OSError) as e:
        logger.error(str(e))
        return 1

    logger.info(f"Wrote {coefficients.shape[0]} coefficients to {output_path}")
    logger.info(f"  DC term: {coefficients[0].tolist()}")
    logger.info(f"  Total time: {load_time + encode_time:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
