import numpy as np
import pytest

from dustgoggles.tracker import Tracker

import fitscodec


@pytest.fixture(scope="session")
def tracker_factory(tmp_path_factory):
    tracker_log_dir = tmp_path_factory.mktemp("tracker_logs", numbered=False)

    def make_tracker(path):
        return Tracker(path.name.replace(".", "_"), outdir=tracker_log_dir)

    return make_tracker


@pytest.fixture
def minimal_header():
    """a 9-card primary header, END included"""
    return fitscodec.Header.from_cards(
        [
            ("SIMPLE", True),
            ("BITPIX", 16),
            ("NAXIS", 2),
            ("NAXIS1", 10),
            ("NAXIS2", 10),
            ("EXTEND", True),
            ("DATE", "2020-01-01"),
            ("ORIGIN", "lab"),
        ]
    )


@pytest.fixture
def multi_hdu_file():
    image = np.arange(24, dtype=np.uint16).reshape(2, 3, 4)
    fits = fitscodec.FitsFile(
        "stack_0042.fits", [fitscodec.build("PRIMARY", image)]
    )
    fits.append("IMAGE", np.linspace(-1, 1, 10, dtype=np.float32))
    fits.append(
        "TABLE",
        {"id": np.array([1, 22, 333]), "ratio": np.array([0.5, 1.25, -3.0])},
    )
    fits.append(
        "BINTABLE",
        {
            "name": np.array(["alpha", "b", "gamma ray"]),
            "counts": np.array([0, 40000, 65535], dtype=np.uint16),
            "spectrum": np.arange(12, dtype=np.float64).reshape(3, 4),
        },
    )
    return fits
