import sys
from importlib import import_module
from pathlib import Path

if __package__ in {None, ""}:
    project_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(project_root))

CHECK_IMPORTS_MODE = "--check-imports" in sys.argv

app_module = import_module("archive_reader")
create_app = app_module.create_app

app = create_app()

if __name__ == "__main__":
    if CHECK_IMPORTS_MODE:
        from archive_reader.startup_check import verify_imports

        verify_imports()
        print("Import check successful.")
        sys.exit(0)
    app.run(host="0.0.0.0", port=8080, debug=True)
