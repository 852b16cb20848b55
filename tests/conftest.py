from __future__ import annotations

import os


# The default config reads the shared context and target from the environment;
# pin them so default-config runs are deterministic.
os.environ.setdefault("QP_DB_NAME", "workbench")
os.environ.setdefault("QP_TARGET_HOST", "127.0.0.1")
