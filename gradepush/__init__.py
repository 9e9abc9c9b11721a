from importlib import metadata
from pathlib import Path

here = Path(__file__).parent
version_file = here.parent / "VERSION.txt"
if version_file.exists():
    __version__ = version_file.read_text(encoding="utf8").strip()
else:
    __version__ = metadata.version("gradepush")
