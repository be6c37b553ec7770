"""Shared test fixtures for tasklog tests"""

import logging
import os
import random

import pytest
from faker import Faker

from tasklog.storage.identity_cache import EntryIdentityCache
from tasklog.storage.structured_store import StructuredCsvStore
from tasklog.types.data_store import StructuredCsvConfig


@pytest.fixture(scope="session", autouse=True)
def setup_factory_seed():
    """Configure factory_boy/Faker to use a deterministic seed for reproducibility.

    The seed can be set via FACTORY_SEED environment variable, or will be
    randomly generated. The seed is printed to stdout for reproducibility.
    """
    seed = os.environ.get("FACTORY_SEED")
    if seed:
        seed = int(seed)
    else:
        seed = random.randint(0, 2**32 - 1)

    print(f"\n{'=' * 70}")
    print(f"Factory seed: {seed}")
    print(f"To reproduce this test run, set: FACTORY_SEED={seed}")
    print(f"{'=' * 70}\n")

    Faker.seed(seed)
    random.seed(seed)

    return seed


@pytest.fixture(autouse=True)
def isolate_root_logger():
    """Drop handlers added by setup_logging so each test configures afresh."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def csv_config(tmp_path):
    """Structured CSV config rooted in a temporary directory."""
    return StructuredCsvConfig(csv_base_path=str(tmp_path / "data"))


@pytest.fixture
def identity_cache():
    return EntryIdentityCache()


@pytest.fixture
def store(csv_config, identity_cache):
    """Create a StructuredCsvStore; initialization happens on first use."""
    csv_store = StructuredCsvStore(csv_config, identity_cache=identity_cache)
    yield csv_store
    csv_store._dispose_engine()
