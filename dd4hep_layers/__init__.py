"""Conversion of DD4hep detector elements into tracking layers."""

__version__ = '0.1'
