import pytest

from src.exps_flammability.candidates import ModelSpec
from src.exps_flammability.data_loader import prepare_observations, simulate_observations
from src.exps_flammability.mixed_model import fit_mixed_model

REQUIRED = ["tti", "individual", "mpa", "sample_wt", "start_temp", "year_month"]


@pytest.fixture(scope="session")
def trials():
    return simulate_observations(seed=0)


@pytest.fixture(scope="session")
def prepared(trials):
    return prepare_observations(trials, required_columns=REQUIRED)


@pytest.fixture(scope="session")
def full_spec():
    return ModelSpec(response="tti", terms=("mpa_scaled", "sample_wt_scaled", "start_temp_scaled"), group="individual")


@pytest.fixture(scope="session")
def fitted(prepared, full_spec):
    return fit_mixed_model(prepared, full_spec)
