"""
Serializable data types.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import torch

from .core.sph import sph_l_max_from_indices_total
from .errors import MalformedCoefficientFile

CHANNEL_NAMES = ("red", "green", "blue", "alpha")


@dataclass
class ShCoefficientsCPU:
    """Spherical harmonic coefficients with CPU/serializable data, one list per channel."""
    order: int  # highest band
    channels: Dict[str, List[float]] = field(default_factory=dict)  # channel name -> (n_terms) values

    @classmethod
    def from_tensor(cls, coefficients: torch.Tensor) -> "ShCoefficientsCPU":
        """
        :params coefficients (n_terms, C) with C = 3 (rgb) or 4 (rgba)
        """
        n_terms, n_channels = coefficients.shape
        assert n_channels in (3, 4), f'Only rgb and rgba coefficients can be serialized, got {n_channels} channels'
        values = coefficients.detach().cpu().to(torch.float64).numpy()
        return cls(
            order=sph_l_max_from_indices_total(n_terms),
            channels={name: values[:, i].tolist() for i, name in enumerate(CHANNEL_NAMES[:n_channels])},
        )

    @classmethod
    def from_dict(cls, data: dict) -> "ShCoefficientsCPU":
        """
        Parse the coefficient file layout. Unknown channel names are ignored.
        """
        if not isinstance(data, dict):
            raise MalformedCoefficientFile(f'Expected a JSON object, got {type(data).__name__}')
        channels = data.get("channels")
        if not isinstance(channels, dict):
            raise MalformedCoefficientFile('Missing or invalid "channels" object')

        parsed = {}
        for name, values in channels.items():
            if name not in CHANNEL_NAMES:
                continue
            if not isinstance(values, list) or not all(
                    isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
                raise MalformedCoefficientFile(f'Channel "{name}" must be an array of numbers')
            parsed[name] = [float(v) for v in values]

        lengths = {len(values) for values in parsed.values()}
        if len(lengths) > 1:
            raise MalformedCoefficientFile(f'Channels have different lengths: {sorted(lengths)}')
        n_terms = lengths.pop() if lengths else 0

        order = data.get("order")
        if not isinstance(order, int) or isinstance(order, bool):
            order = sph_l_max_from_indices_total(n_terms)
        return cls(order=order, channels=parsed)

    @property
    def n_terms(self) -> int:
        return max((len(values) for values in self.channels.values()), default=0)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'order': self.order,
            'channels': self.channels,
        }

    def to_tensor(self, channels: int = 3) -> torch.Tensor:
        """
        Missing channels are zero filled.

        :returns coefficients (n_terms, channels) float64
        """
        assert channels in (3, 4), f'channels must be 3 or 4, got {channels}'
        coefficients = torch.zeros((self.n_terms, channels), dtype=torch.float64)
        for i, name in enumerate(CHANNEL_NAMES[:channels]):
            if name in self.channels:
                coefficients[:, i] = torch.tensor(self.channels[name], dtype=torch.float64)
        return coefficients
