"""Project-wide constants (default workdir, chunking parameters, layout names)."""

DEFAULT_WORKDIR = "data"
WORKDIR_ENV_VAR = "INCRESTORE_WORKDIR"

MIN_CHUNK_SIZE_BYTES: int = 2 * 1024
MAX_CHUNK_SIZE_BYTES: int = 64 * 1024
BOUNDARY_BITS: int = 13  # ~8 KiB average chunk past the minimum
ROLLING_WINDOW_BYTES: int = 48

DEFAULT_HASH_ALGORITHM = "sha256"
READ_BLOCK_SIZE_BYTES: int = 1024 * 1024

OBJECTS_DIR_NAME = "objects"
SCRATCH_DIR_NAME = "tmp"
DATABASE_FILE_NAME = "meta.db"
CONFIG_FILE_NAME = "increstore.json"

LATEST = "latest"
