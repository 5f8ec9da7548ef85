from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Union, Literal
import io
from functools import lru_cache
import logging


class Config(BaseSettings):
    """
    Package settings, loaded from environment variables or a .env file.

    Controls where temporary zone rasters are written, the metadata
    conventions used to date the layers of a raster stack, default
    extraction options and the logging level.
    """

    TEMP_DIR: Optional[Path] = Field(
        default=None,
        description="Directory for temporary zone vectors/rasters (system temp if unset)",
        alias="TSEXTRACT_TEMP_DIR",
    )
    BAND_DATE_TAG: str = Field(
        default="DATE",
        description="Per-band metadata tag holding the acquisition date",
        alias="TSEXTRACT_BAND_DATE_TAG",
    )
    FEATURE_ID_FIELD: str = Field(
        default="_tsx_fid",
        description="Name of the synthetic feature identifier column",
        alias="TSEXTRACT_FEATURE_ID_FIELD",
    )
    DEFAULT_OUT_FORMAT: Literal["table", "timeseries"] = Field(
        default="timeseries", alias="TSEXTRACT_DEFAULT_OUT_FORMAT"
    )
    DEFAULT_SMALL_METHOD: Literal["centroid", "full"] = Field(
        default="centroid", alias="TSEXTRACT_DEFAULT_SMALL_METHOD"
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="TSEXTRACT_LOG_LEVEL"
    )

    def get_logger(self, name="TsExtract", console_level=None):
        """Package logger with a single console handler."""
        logger = logging.getLogger(name)
        logger.setLevel(self.LOG_LEVEL)

        if not logger.hasHandlers():
            handler = logging.StreamHandler()
            handler.setLevel(console_level or self.LOG_LEVEL)
            handler.setFormatter(
                logging.Formatter(
                    "%(levelname) -10s  %(name) -10s %(asctime) -30s: %(message)s"
                )
            )
            logger.addHandler(handler)

        return logger

    def get_tqdm_logger_stream(self, logger: logging.Logger, level=logging.INFO):
        return TqdmToLogger(logger, level=level)

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("TEMP_DIR", mode="before")
    def validate_temp_dir(cls, value: Union[str, Path, None]) -> Optional[Path]:
        """Empty values mean the system temp directory; '~' is expanded."""
        if value is None or value == "":
            return None
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        raise ValueError(f"Invalid path type for TEMP_DIR: {type(value)}")

    def ensure_temp_dir_exists(self) -> Optional[Path]:
        """Create TEMP_DIR if it is configured; returns it (or None for system temp)."""
        if self.TEMP_DIR is not None:
            self.TEMP_DIR.mkdir(parents=True, exist_ok=True)
        return self.TEMP_DIR


class TqdmToLogger(io.StringIO):
    """
    Stream handed to tqdm so progress bars end up in the log instead of stderr.
    """

    def __init__(self, logger, level=logging.INFO):
        super().__init__()
        self.logger = logger
        self.level = level
        self._pending = ""

    def write(self, text):
        # tqdm redraws with '\r'; log each completed line once
        self._pending += text
        if "\r" in text or "\n" in text:
            self.flush()

    def flush(self):
        line = self._pending.strip("\r\n")
        self._pending = ""
        if line:
            self.logger.log(self.level, line)


@lru_cache()
def get_default_config() -> Config:
    """Returns a singleton instance of Config."""
    return Config()


config = get_default_config()
