"""
Length units used by the layer builder.

The internal length unit is the millimeter. DD4hep hands out lengths in
centimeters, so every length read from a detector element is multiplied by
``UNIT_CM`` before it enters the tracking geometry.
"""

UNIT_MM = 1.0
UNIT_CM = 10.0

# Conversion factors from compact-description units to the DD4hep native
# unit (cm for lengths, rad for angles)
COMPACT_UNITS = {
    'mm': 0.1,
    'cm': 1.0,
    'm': 100.0,
    'um': 1.0e-4,
    'rad': 1.0,
    'mrad': 0.001,
    'deg': 0.017453292519943295,
}
