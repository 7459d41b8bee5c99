import json
import os
import tempfile
import time


def write_json_atomic(data, path: str, retries: int = 30, sleep_s: float = 0.01) -> None:
    """
    Write data as JSON next to path, then rename over it.
    Readers (a browser polling the file, another process) never see half a file.
    """
    dir_name = os.path.dirname(os.path.abspath(path)) or "."
    last_err = None

    for _ in range(retries):
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix="tmp_", suffix=".json", dir=dir_name)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, path)
            tmp_path = None
            return
        except PermissionError as e:
            # windows: reader holds the target open
            last_err = e
            time.sleep(sleep_s)
        finally:
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    raise last_err
