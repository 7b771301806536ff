"""
Overall parameters for lateral ocean tracer mixing

This module provides a unified Parameters class that contains the
configuration of the lateral diffusion schemes and of the mixed layer depth
provider feeding the boundary-layer scheme.
"""

import tree_math

from jnd.neutral_diffusion.neutral_diffusion_types import NeutralDiffusionParameters
from jnd.mixed_layer import MixedLayerParameters


@tree_math.struct
class Parameters:
    """
    Overall parameters for lateral ocean tracer mixing
    """

    neutral_diffusion: NeutralDiffusionParameters
    mixed_layer: MixedLayerParameters

    @classmethod
    def default(cls):
        return cls(
            neutral_diffusion = NeutralDiffusionParameters.default(),
            mixed_layer = MixedLayerParameters.default()
        )

    def with_neutral_diffusion(self, **kwargs) -> 'Parameters':
        """Create new Parameters with updated lateral diffusion parameters"""
        nd_params = self.neutral_diffusion.__class__(**{
            **self.neutral_diffusion.__dict__,
            **kwargs
        })
        return self.__class__(
            neutral_diffusion=nd_params,
            mixed_layer=self.mixed_layer
        )

    def with_mixed_layer(self, **kwargs) -> 'Parameters':
        """Create new Parameters with updated mixed layer parameters"""
        ml_params = self.mixed_layer.__class__(**{
            **self.mixed_layer.__dict__,
            **kwargs
        })
        return self.__class__(
            neutral_diffusion=self.neutral_diffusion,
            mixed_layer=ml_params
        )
