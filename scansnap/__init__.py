"""
ScanSnap Server - network front-end for a document scanner.

One HTTP request triggers a duplex ADF scan, the pages are down-sampled,
JPEG compressed and returned as a single A4 PDF.
"""

__version__ = "1.0.0"
__author__ = "ScanSnap Server"
