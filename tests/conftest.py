from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the repository root is on sys.path so `import broadcast_meter` works
# when pytest is invoked via the `pytest` entrypoint script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def sine(freq, amplitude, n, sample_rate=48000, phase=0.0):
    t = np.arange(n) / float(sample_rate)
    return amplitude * np.sin(2 * np.pi * freq * t + phase)


@pytest.fixture
def sr():
    return 48000
