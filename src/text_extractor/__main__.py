# -*- coding: utf-8 -*-
"""
Entry point for running Text Extractor as a module.

Usage:
    python -m text_extractor [image] [--engine paddle|tesseract] [--preferences PATH]
"""

import sys
from .app import main

if __name__ == "__main__":
    sys.exit(main())
