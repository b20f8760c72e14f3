import pytest

from src.exps_flammability.config import AIC_TIE_THRESHOLD, VIF_THRESHOLD, SelectionConfig, parse_args


def test_defaults():
    cfg = parse_args(["--simulate"])
    assert cfg.aic_threshold == AIC_TIE_THRESHOLD == 2.0
    assert cfg.vif_threshold == VIF_THRESHOLD == 4.0
    assert cfg.mandatory == "mpa_scaled"
    assert cfg.group == "individual"
    assert cfg.optional == ("sample_wt_scaled", "start_temp_scaled", "year_month")
    assert cfg.ignited_only


def test_overrides():
    cfg = parse_args(
        [
            "--data",
            "trials.csv",
            "--mandatory",
            "lfm_scaled",
            "--optional",
            "sample_wt_scaled",
            "--aic-threshold",
            "3",
            "--no-vif-gate",
            "--r2-kind",
            "conditional",
            "--workers",
            "4",
        ]
    )
    assert cfg.data == "trials.csv"
    assert cfg.mandatory == "lfm_scaled"
    assert cfg.optional == ("sample_wt_scaled",)
    assert cfg.aic_threshold == 3.0
    assert cfg.vif_threshold is None
    assert cfg.r2_kind == "conditional"
    assert cfg.workers == 4


def test_requires_data_or_simulate():
    with pytest.raises(ValueError):
        SelectionConfig()


def test_rejects_unknown_r2_kind():
    with pytest.raises(ValueError):
        SelectionConfig(simulate=True, r2_kind="adjusted")
