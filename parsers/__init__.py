"""
External catalog parsers.

Each parser maps one platform's product shape into a batch submission.
"""

from parsers.edi_parser import parse_edi_products

__all__ = [
    "parse_edi_products",
]
