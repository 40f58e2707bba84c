"""Generator adapters and output clean-up used by the repair loop."""

from mapping_forge.synthesis_plane.generator import (
    CallableGenerator,
    CommandGenerator,
    Generator,
    GeneratorError,
    GeneratorResponse,
    GeneratorResponseError,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
    strip_formatting_noise,
)

__all__ = [
    "CallableGenerator",
    "CommandGenerator",
    "Generator",
    "GeneratorError",
    "GeneratorResponse",
    "GeneratorResponseError",
    "GeneratorTimeoutError",
    "GeneratorUnavailableError",
    "strip_formatting_noise",
]
