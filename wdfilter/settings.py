import os

# Size of the reads from the compressed file or download
READ_CHUNK_SIZE = int(os.environ.get("WDFILTER_READ_CHUNK_SIZE", default=1024 * 1024))

# Upper bound on a single decompressed chunk handed to the splitter
DECOMPRESSED_CHUNK_SIZE = int(os.environ.get("WDFILTER_DECOMPRESSED_CHUNK_SIZE", default=1024 * 1024))

# Where dumps are downloaded from, "{version}" is replaced by DUMP_VERSION
DUMP_URL = os.environ.get(
    "WDFILTER_DUMP_URL",
    default="https://dumps.wikimedia.org/wikidatawiki/entities/{version}-all.json.bz2")
DUMP_VERSION = os.environ.get("WDFILTER_DUMP_VERSION", default="latest")

# Directory where downloads (and their .part files) are written
DOWNLOAD_DIR = os.environ.get("WDFILTER_DOWNLOAD_DIR", default=".")

# Retry policy for transient network errors
RETRIES = int(os.environ.get("WDFILTER_RETRIES", default=5))
RETRY_DELAY = float(os.environ.get("WDFILTER_RETRY_DELAY", default=5))
TIMEOUT = float(os.environ.get("WDFILTER_TIMEOUT", default=60))

# The jq binary used by the filter command
JQ = os.environ.get("WDFILTER_JQ", default="jq")

# Output lines written between two flushes of the sink
FLUSH_EVERY = int(os.environ.get("WDFILTER_FLUSH_EVERY", default=1000))

# Elements read between two progress log lines
LOG_EVERY = int(os.environ.get("WDFILTER_LOG_EVERY", default=100000))

# Seconds given to the filter process to exit after being terminated
KILL_TIMEOUT = float(os.environ.get("WDFILTER_KILL_TIMEOUT", default=5))
