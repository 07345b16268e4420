"""memories — versioned key-value memory store backed by git."""

__version__ = "0.1.0"

# Name of the metadata directory that marks a store (git dir + vectors + config).
STORE_DIR = ".mem"

# Sentinel file committed at init time; never surfaced as a memory.
SENTINEL_FILE = ".mem-init"
