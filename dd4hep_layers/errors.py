"""Exceptions raised while converting detector elements into tracking layers."""


class LayerBuildError(Exception):
    """Base class for all layer building failures."""


class StructuralGeometryError(LayerBuildError, ValueError):
    """A detector element offers no usable way to determine its extent."""

    def __init__(self, element_name, reason):
        self.element_name = element_name
        self.reason = reason
        super().__init__(f"Layer DetElement: {element_name} {reason}")


class MissingExtensionError(LayerBuildError, KeyError):
    """A detector element carries no Acts extension."""

    def __init__(self, element_name):
        self.element_name = element_name
        super().__init__(element_name)

    def __str__(self):
        return (f"DetElement: {self.element_name} has no Acts extension attached. "
                f"Please check your detector constructor!")
