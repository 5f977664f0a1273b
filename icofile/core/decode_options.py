# icofile/core/decode_options.py

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DecodeOptions(BaseSettings):
    """
    Knobs that change how pixel data is reconstructed. Every field can be set
    from an ICOFILE_* environment variable (e.g. ICOFILE_EXPAND_555=false);
    keyword arguments win over the environment.

    flip_32bpp_rows: read 32 bpp XOR planes bottom-up like every other depth.
        False keeps the source rows in stored order.
    expand_555: scale 16 bpp 5-bit channels to the full 0-255 range.
        False leaves the raw 5-bit values in the low bits of each channel.
    max_color_table: largest palette accepted before the block is rejected.
    skip_unclaimed_bytes: after a matched block, read past whatever part of
        bytes_in_resource the decoder did not consume.
    """
    model_config = SettingsConfigDict(
        env_prefix="ICOFILE_",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    flip_32bpp_rows: bool = True
    expand_555: bool = True
    max_color_table: int = Field(65536, ge=0)
    skip_unclaimed_bytes: bool = True

    @classmethod
    def from_env(cls, **overrides) -> 'DecodeOptions':
        """
        Builds options from the environment, then applies the keyword overrides
        that are not None.

        Raises:
            pydantic.ValidationError: an ICOFILE_* variable holds an invalid value.
        """
        return cls(**{k: v for k, v in overrides.items() if v is not None})


# Field defaults only. The environment is read when options are constructed.
DEFAULT_OPTIONS = DecodeOptions.model_construct()
