from __future__ import annotations

import signal
import subprocess
import sys
import time


def _terminate(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()


def main() -> int:
    python = sys.executable
    procs = {
        "api": subprocess.Popen([python, "run_local.py"]),
        "worker": subprocess.Popen([python, "-m", "app.worker"]),
    }

    try:
        while True:
            for name, proc in procs.items():
                code = proc.poll()
                if code is None:
                    continue
                print(f"{name} exited with code {code}, stopping the rest", file=sys.stderr)
                for other in procs.values():
                    _terminate(other)
                return code
            time.sleep(0.5)
    except KeyboardInterrupt:
        for proc in procs.values():
            _terminate(proc)
        return 0


if __name__ == "__main__":
    signal.signal(signal.SIGINT, signal.default_int_handler)
    raise SystemExit(main())
