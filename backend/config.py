from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Encoder
    ffmpeg_binary: str = "ffmpeg"
    metadata_comment: str = "Downloaded via MP3 Downloader"

    # YouTube settings
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    socket_timeout: int = 15
    search_limit: int = 24

    # Streaming
    chunk_size: int = 64 * 1024
    source_high_water_mark: int = 1 << 25  # 32 MiB buffered ahead of the encoder
    source_range_chunk_size: int = 10 * 1024 * 1024
    first_chunk_timeout_seconds: float = 60.0
    # Extra wait per second of trimmed-off audio before the first encoded byte
    first_chunk_seek_allowance: float = 0.5

    # Cover art
    cover_timeout_seconds: float = 10.0
    cover_max_bytes: int = 5 * 1024 * 1024

    # HTTP
    rate_limit: str = "60/minute"
    cors_origins: str = "*"  # Comma separated
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
