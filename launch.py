# launch.py: starts the Streamlit app, also from a PyInstaller bundle
import os
import sys

from streamlit.web.cli import main as st_main


def resource_path(rel_path: str) -> str:
    base = getattr(sys, "_MEIPASS", os.path.abspath("."))
    return os.path.join(base, rel_path)


if __name__ == "__main__":
    os.chdir(getattr(sys, "_MEIPASS", os.path.abspath(".")))

    # local data (activity streaks): %APPDATA%/THEUNOiA on Windows
    if os.name == "nt":
        os.environ.setdefault(
            "THEUNOIA_DATA_DIR",
            os.path.join(os.getenv("APPDATA", os.path.expanduser("~")), "THEUNOiA"),
        )

    app_path = resource_path(os.path.join("theunoia", "app.py"))
    sys.argv = ["streamlit", "run", app_path, "--server.headless=true"]
    raise SystemExit(st_main())
