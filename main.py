#!/usr/bin/env python3
"""
PDF Content Extractor - Main Entry Point
Extracts structural elements from the first page of a PDF, renders them to a
PNG or builds a relative map calibrated against a picture of the page.
"""

import sys
import argparse
import logging
from pathlib import Path
import yaml
from typing import Dict, Any

from pdfcontent.parser.elements import TextLevel
from pdfcontent.pipeline import (
    create_relative_map, extract_page_elements, recognize_image, render_elements, render_full_page
)
from pdfcontent.rebuilder.coordinate_mapper import BoundsMode


def setup_logging(level: str = "INFO"):
    """
    Setup logging configuration.

    Args:
        level: Logging level
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('pdfcontent.log')
        ]
    )


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary
    """
    if config_path and Path(config_path).exists():
        with open(config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    # Default config path
    default_config = Path(__file__).parent / 'config' / 'config.yaml'
    if default_config.exists():
        with open(default_config, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    # Fallback to minimal config
    return {
        'parser': {'min_rect_size': 5.0, 'rect_tolerance': 0.5, 'min_line_length': 5.0},
        'aggregator': {'edge_line_tolerance': 2.0, 'small_rect_exemption': 30.0},
        'crop_resolver': {'min_crop_size': 100.0},
        'renderer': {'dpi': 300, 'text_scale': 0.75, 'ocr_images': False},
        'calibration': {'min_ocr_confidence': 30.0, 'mask_graphics': False},
        'ocr': {'language': 'eng', 'page_seg_mode': 3, 'preprocess': True},
        'fonts': {'default_family': 'sans', 'font_mapping': {}},
    }


def run(args: argparse.Namespace, config: Dict[str, Any]) -> bool:
    """
    Run the selected mode.

    Returns:
        True if successful
    """
    logger = logging.getLogger(__name__)

    if args.mode == 'page':
        result = render_full_page(args.input, config, args.output_dir, args.dpi)
        if not result.success:
            logger.error(f"Page render failed: {result.error_message}")
            return False
        logger.info(f"Output: {result.value}")
        return True

    if args.mode == 'ocr':
        mask_graphics = args.mask_graphics or config.get('calibration', {}).get('mask_graphics', False)
        result = recognize_image(args.input, config, mask_graphics, TextLevel(args.level))
        if not result.success:
            logger.error(f"Recognition failed: {result.error_message}")
            return False
        for region in result.value.regions:
            logger.info(f"  {region.orientation.value:10s} conf={region.confidence:5.1f} "
                        f"box={region.box} {region.text!r}")
        logger.info(f"Recognized {len(result.value.regions)} regions in "
                    f"{result.value.processing_time_ms:.0f} ms")
        logger.info(f"Text: {result.value.full_text}")
        return True

    default_bounds = 'rect' if args.mode == 'relmap' else 'crop'
    bounds_mode = BoundsMode(args.bounds or default_bounds)
    strip_marks = args.strip_marks or bounds_mode is BoundsMode.CROP_MARKS

    extracted = extract_page_elements(args.input, config, strip_marks=strip_marks,
                                      level=TextLevel(args.level))
    if not extracted.success:
        logger.error(f"Extraction failed: {extracted.error_message}")
        return False
    elements = extracted.value

    if args.mode == 'relmap':
        result = create_relative_map(elements, config, bounds_mode, mark_to=args.mark_to)
        if not result.success:
            logger.error(f"Relative map failed: {result.error_message}")
            return False
        relative_map = result.value
        for element in relative_map.elements:
            label = getattr(element, 'text', '') or element.kind
            logger.info(f"  {element.kind:5s} {label!r}: center=({element.relative_x:.4f}, "
                        f"{element.relative_y:.4f}) size=({element.relative_width:.4f}, "
                        f"{element.relative_height:.4f})")
        if relative_map.calibration is not None:
            calibration = relative_map.calibration
            logger.info(f"Calibration: {calibration.method}, {calibration.match_count} matches, "
                        f"crop={calibration.crop}")
        return True

    result = render_elements(elements, args.input, config, bounds_mode, args.output_dir,
                             dpi=args.dpi, mark_to=args.mark_to)
    if not result.success:
        logger.error(f"Rendering failed: {result.error_message}")
        return False

    logger.info("=" * 60)
    logger.info("Rendering complete!")
    logger.info(f"Input:    {args.input}")
    logger.info(f"Output:   {result.value.output_path}")
    logger.info(f"Size:     {result.value.width}x{result.value.height}px")
    logger.info(f"Elements: {len(result.value.elements)}")
    logger.info("=" * 60)
    return True


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Extract, render and calibrate PDF page content',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py input.pdf
  python main.py input.pdf --dpi 150 --bounds rect
  python main.py input.pdf --mode relmap --mark-to scan.png
  python main.py input.pdf --mode page --output-dir out
  python main.py scan.png --mode ocr --mask-graphics
        """
    )

    parser.add_argument('input', help='Input PDF file path (an image in ocr mode)')
    parser.add_argument('--mode', default='render', choices=['render', 'relmap', 'page', 'ocr'],
                        help='render elements, build a relative map, rasterize the page, '
                             'or read the text of an image')
    parser.add_argument('--bounds', choices=['crop', 'rect', 'auto'],
                        help='Content bounds (default: crop for render, rect for relmap)')
    parser.add_argument('--dpi', type=int, help='Render resolution')
    parser.add_argument('--output-dir', default='images', help='Output directory (default: images)')
    parser.add_argument('--mark-to', help='Image to mark rendered elements or calibrate against')
    parser.add_argument('--strip-marks', action='store_true',
                        help='Remove bleed and crop marks before rendering')
    parser.add_argument('--mask-graphics', action='store_true',
                        help='White out logo-like regions before OCR (ocr mode)')
    parser.add_argument('--level', default='word', choices=['word', 'line'],
                        help='Text granularity (default: word)')
    parser.add_argument('--config', help='Path to configuration file')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')

    args = parser.parse_args()

    # Setup logging
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    # Validate input file
    if not Path(args.input).exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    # Load configuration
    config = load_config(args.config)

    # Override with command line arguments
    if args.dpi:
        config.setdefault('renderer', {})['dpi'] = args.dpi

    success = run(args, config)

    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
