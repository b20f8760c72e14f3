import warnings

import numpy as np
import pytest
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from src.exps_flammability import mixed_model
from src.exps_flammability.candidates import ModelSpec
from src.exps_flammability.mixed_model import FitFailure, FitResult


def test_model_fits(fitted):
    assert isinstance(fitted, FitResult)
    assert fitted.result.converged
    assert np.isfinite(fitted.aic)
    assert fitted.n_groups == 24


def test_r2_bounds(fitted):
    assert 0.0 <= fitted.r2_marginal <= fitted.r2_conditional <= 1.0
    assert fitted.r2("conditional") == fitted.r2_conditional
    with pytest.raises(ValueError):
        fitted.r2("adjusted")


def test_mpa_effect_recovered(fitted):
    # simulated tti falls by 3 s per MPa; scaled slope should be clearly negative
    assert fitted.coefficients.loc["mpa_scaled", "coef"] < 0
    assert fitted.coefficients.loc["mpa_scaled", "pvalue"] < 0.05


def test_fixed_effects_table(fitted):
    fx = mixed_model.fixed_effects(fitted)
    assert {"coef", "se", "z", "pvalue"}.issubset(fx.columns)
    assert list(fx.index) == ["Intercept", "mpa_scaled", "sample_wt_scaled", "start_temp_scaled"]


def test_vif_attached(fitted):
    assert set(fitted.vif.index) == {"mpa_scaled", "sample_wt_scaled", "start_temp_scaled"}
    assert not fitted.is_collinear(4.0)


def test_model_diagnostics(fitted):
    diag = mixed_model.model_diagnostics(fitted)
    assert {"aic", "bic", "llf", "r2_marginal", "r2_conditional", "max_vif", "converged"}.issubset(diag.keys())


def test_prediction_output_shape(prepared, fitted):
    preds = mixed_model.predict(fitted, prepared)
    assert len(preds) == len(prepared)


def test_prediction_grid(fitted):
    grid = mixed_model.prediction_grid(fitted, "mpa_scaled", "sample_wt_scaled", num=5)
    assert len(grid) == 25
    assert list(grid.columns) == ["mpa_scaled", "sample_wt_scaled", "prediction"]


def test_categorical_term_fits(prepared):
    spec = ModelSpec(response="tti", terms=("mpa_scaled", "year_month"), group="individual")
    fit = mixed_model.fit_mixed_model(prepared, spec)
    assert isinstance(fit, FitResult)
    assert "year_month" in fit.vif.index


def test_rank_deficient_design_is_failure(prepared):
    df = prepared.assign(mpa_copy=2.0 * prepared["mpa_scaled"])
    spec = ModelSpec(response="tti", terms=("mpa_scaled", "mpa_copy"), group="individual")
    outcome = mixed_model.fit_mixed_model(df, spec)
    assert isinstance(outcome, FitFailure)
    assert "rank-deficient" in outcome.reason


def test_non_convergence_is_failure(prepared, full_spec, monkeypatch):
    class _Result:
        converged = False

    class _Model:
        def fit(self, **kwargs):
            return _Result()

    monkeypatch.setattr(mixed_model.smf, "mixedlm", lambda **kwargs: _Model())
    outcome = mixed_model.fit_mixed_model(prepared, full_spec)
    assert isinstance(outcome, FitFailure)
    assert "did not converge" in outcome.reason


def test_estimator_error_is_failure(prepared, full_spec, monkeypatch):
    class _Model:
        def fit(self, **kwargs):
            raise np.linalg.LinAlgError("Singular matrix")

    monkeypatch.setattr(mixed_model.smf, "mixedlm", lambda **kwargs: _Model())
    outcome = mixed_model.fit_mixed_model(prepared, full_spec)
    assert isinstance(outcome, FitFailure)
    assert "Singular matrix" in outcome.reason


def test_insufficient_groups_error(prepared, full_spec):
    df = prepared.assign(individual="single")
    with pytest.raises(ValueError):
        mixed_model.fit_mixed_model(df, full_spec)


def test_missing_column_error(prepared):
    spec = ModelSpec(response="tti", terms=("mpa_scaled", "not_a_column"), group="individual")
    with pytest.raises(ValueError, match="not_a_column"):
        mixed_model.fit_mixed_model(prepared, spec)


def test_failure_does_not_abort_remaining_candidates(prepared, full_spec):
    df = prepared.assign(mpa_copy=prepared["mpa_scaled"])
    bad = ModelSpec(response="tti", terms=("mpa_scaled", "mpa_copy"), group="individual")
    outcomes = mixed_model.evaluate_candidates([bad, full_spec], df)
    assert isinstance(outcomes[0], FitFailure)
    assert isinstance(outcomes[1], FitResult)


def test_threaded_evaluation_keeps_order(prepared):
    specs = [
        ModelSpec(response="tti", terms=("mpa_scaled",), group="individual"),
        ModelSpec(response="tti", terms=("mpa_scaled", "sample_wt_scaled"), group="individual"),
        ModelSpec(response="tti", terms=("mpa_scaled", "start_temp_scaled"), group="individual"),
    ]
    sequential = mixed_model.evaluate_candidates(specs, prepared)
    threaded = mixed_model.evaluate_candidates(specs, prepared, max_workers=3)
    assert [o.spec for o in threaded] == specs
    assert [o.aic for o in threaded] == pytest.approx([o.aic for o in sequential])


def test_single_level_categorical_fits(prepared):
    df = prepared.assign(year_month="2020-09")
    spec = ModelSpec(response="tti", terms=("mpa_scaled", "year_month"), group="individual")
    fit = mixed_model.fit_mixed_model(df, spec)
    assert isinstance(fit, FitResult)
    assert list(fit.vif.index) == ["mpa_scaled"]


def _converged_model(cov_re=1.0, bse_fe=(0.5,), warn=None):
    class _Result:
        converged = True
        scale = 1.0

    _Result.cov_re = np.array([[cov_re]])
    _Result.bse_fe = np.array(bse_fe)

    class _Model:
        def fit(self, **kwargs):
            if warn is not None:
                warnings.warn(warn, ConvergenceWarning)
            return _Result()

    return _Model()


def test_singular_random_intercept_is_failure(prepared, full_spec, monkeypatch):
    monkeypatch.setattr(mixed_model.smf, "mixedlm", lambda **kwargs: _converged_model(cov_re=0.0))
    outcome = mixed_model.fit_mixed_model(prepared, full_spec)
    assert isinstance(outcome, FitFailure)
    assert "singular" in outcome.reason


def test_hessian_warning_is_failure(prepared, full_spec, monkeypatch):
    msg = "The Hessian matrix at the estimated parameter values is not positive definite."
    monkeypatch.setattr(mixed_model.smf, "mixedlm", lambda **kwargs: _converged_model(warn=msg))
    outcome = mixed_model.fit_mixed_model(prepared, full_spec)
    assert isinstance(outcome, FitFailure)
    assert "Hessian" in outcome.reason


def test_non_finite_standard_errors_are_failure(prepared, full_spec, monkeypatch):
    monkeypatch.setattr(mixed_model.smf, "mixedlm", lambda **kwargs: _converged_model(bse_fe=(0.5, np.nan)))
    outcome = mixed_model.fit_mixed_model(prepared, full_spec, record_warnings=False)
    assert isinstance(outcome, FitFailure)
    assert "Hessian" in outcome.reason


def test_threaded_evaluation_does_not_record_warnings(prepared, full_spec, monkeypatch):
    calls = []

    def fake_fit(df, spec, method, max_iter, record_warnings=True):
        calls.append(record_warnings)
        return FitFailure(spec=spec, reason="stub")

    monkeypatch.setattr(mixed_model, "fit_mixed_model", fake_fit)
    filters_before = list(warnings.filters)
    mixed_model.evaluate_candidates([full_spec, full_spec], prepared, max_workers=2)
    assert calls == [False, False]
    assert list(warnings.filters) == filters_before
