"""
Daily Metabolism Model
======================

One-station, observation-error metabolism model fitted day by day with
maximum likelihood. Each day's dissolved-oxygen curve is simulated from
its first observation:

    DO[t] = DO[t-1] + GPP / z * light[t] / sum(light)
                    + ER / z * dt
                    + KO2[t-1] * dt * (DO.sat[t-1] - DO[t-1])

where dt is the grid step in days and KO2 is K600 converted to O2 at the
water temperature. GPP and ER are in g O2 m-2 d-1, K600 in d-1.
Standard errors come from the inverse of a numerical Hessian of the
negative log-likelihood.
"""

import numpy as np
import pandas as pd
from scipy import optimize, stats
from tqdm import tqdm

import config
from .conversions import k600_to_ko2
from .logging_config import get_logger

logger = get_logger(__name__)

PARAMETERS = ("GPP", "ER", "K600")


def _numerical_hessian(func, x, rel_step=1e-4):
    """Central-difference Hessian of a scalar function."""
    x = np.asarray(x, dtype=float)
    n = len(x)
    steps = rel_step * np.maximum(1.0, np.abs(x))
    hessian = np.empty((n, n))
    for i in range(n):
        for j in range(i, n):
            ei = np.zeros(n)
            ej = np.zeros(n)
            ei[i] = steps[i]
            ej[j] = steps[j]
            value = (
                func(x + ei + ej) - func(x + ei - ej) - func(x - ei + ej) + func(x - ei - ej)
            ) / (4 * steps[i] * steps[j])
            hessian[i, j] = hessian[j, i] = value
    return hessian


class MetabolismModel:
    """
    Daily maximum-likelihood estimator of GPP, ER and K600.

    Days are fitted independently; a day that cannot be fitted is
    reported with NaN estimates and a message rather than raising.
    """

    def __init__(self, initial_values=None, bounds=None, confidence_level=None,
                 min_daily_light=None, max_iterations=None, frequency=None):
        self.initial_values = dict(initial_values or config.MODEL_INITIAL_VALUES)
        self.bounds = dict(bounds or config.MODEL_PARAMETER_BOUNDS)
        self.confidence_level = confidence_level or config.CONFIDENCE_LEVEL
        self.min_daily_light = config.MIN_DAILY_LIGHT if min_daily_light is None else min_daily_light
        self.max_iterations = max_iterations or config.MODEL_MAX_ITERATIONS
        self.timestep_days = pd.Timedelta(frequency or config.GRID_FREQUENCY) / pd.Timedelta("1D")
        self.z_score = stats.norm.ppf(0.5 + self.confidence_level / 2)

    def simulate_do(self, params, do_initial, light, depth, do_sat, temp_water):
        """Simulate one day's DO series (mg/L) for the given parameters."""
        gpp, er, k600 = params
        light = np.asarray(light, dtype=float)
        depth = np.asarray(depth, dtype=float)
        do_sat = np.asarray(do_sat, dtype=float)
        ko2 = k600_to_ko2(k600, temp_water)
        light_fraction = light / light.sum()
        dt = self.timestep_days

        do_mod = np.empty(len(light))
        do_mod[0] = do_initial
        for t in range(1, len(light)):
            do_mod[t] = (
                do_mod[t - 1]
                + gpp / depth[t] * light_fraction[t]
                + er / depth[t] * dt
                + ko2[t - 1] * dt * (do_sat[t - 1] - do_mod[t - 1])
            )
        return do_mod

    def _day_arrays(self, day_df):
        day_df = day_df.sort_values("solar.time")
        return (
            day_df["DO.obs"].to_numpy(dtype=float),
            day_df["light"].to_numpy(dtype=float),
            day_df["depth"].to_numpy(dtype=float),
            day_df["DO.sat"].to_numpy(dtype=float),
            day_df["temp.water"].to_numpy(dtype=float),
        )

    def negative_log_likelihood(self, params, do_obs, light, depth, do_sat, temp_water):
        """Gaussian observation-error NLL with the error variance profiled out."""
        with np.errstate(over="ignore", invalid="ignore"):
            do_mod = self.simulate_do(params, do_obs[0], light, depth, do_sat, temp_water)
            sse = np.sum((do_obs - do_mod) ** 2)
        if not np.isfinite(sse):
            return 1e12
        n = len(do_obs)
        sigma2 = max(sse / n, 1e-12)
        return 0.5 * n * (np.log(2 * np.pi * sigma2) + 1)

    def _empty_result(self, date, message):
        result = {"date": date}
        for name in PARAMETERS:
            result[name] = np.nan
            result[f"{name}_lower"] = np.nan
            result[f"{name}_upper"] = np.nan
        result["converged"] = False
        result["message"] = message
        return result

    def fit_day(self, day_df, date=None):
        """
        Fit one day of aligned data.

        Returns:
            dict with date, GPP/ER/K600 estimates and confidence bounds,
            ``converged`` and a diagnostic ``message``
        """
        if date is None:
            date = pd.Timestamp(day_df["solar.date"].iloc[0]) if "solar.date" in day_df else None

        do_obs, light, depth, do_sat, temp_water = self._day_arrays(day_df)
        if np.isnan(np.column_stack([do_obs, light, depth, do_sat, temp_water])).any():
            return self._empty_result(date, "missing inputs")
        if light.sum() < self.min_daily_light:
            return self._empty_result(date, "insufficient light")

        def objective(x):
            return self.negative_log_likelihood(x, do_obs, light, depth, do_sat, temp_water)

        x0 = np.array([self.initial_values[name] for name in PARAMETERS], dtype=float)
        solution = optimize.minimize(
            objective,
            x0,
            method="Nelder-Mead",
            options={"maxiter": self.max_iterations, "xatol": 1e-6, "fatol": 1e-8},
        )

        result = {"date": date}
        messages = []
        converged = bool(solution.success)
        if not converged:
            messages.append(str(solution.message))

        try:
            covariance = np.linalg.inv(_numerical_hessian(objective, solution.x))
            variances = np.diag(covariance)
        except np.linalg.LinAlgError:
            variances = np.full(len(PARAMETERS), np.nan)
            messages.append("singular Hessian")
        if np.any(variances < 0):
            messages.append("Hessian not positive definite")
        std_errors = np.sqrt(np.where(variances >= 0, variances, np.nan))

        for i, name in enumerate(PARAMETERS):
            estimate = float(solution.x[i])
            result[name] = estimate
            result[f"{name}_lower"] = estimate - self.z_score * std_errors[i]
            result[f"{name}_upper"] = estimate + self.z_score * std_errors[i]
            low, high = self.bounds[name]
            if not low <= estimate <= high:
                converged = False
                messages.append(f"{name} outside plausible range [{low}, {high}]")

        result["converged"] = converged
        result["message"] = "; ".join(messages)
        return result

    def fit(self, aligned_df, day_column="solar.date"):
        """
        Fit every day in an aligned table.

        Returns:
            DataFrame with one row per day: date, GPP, GPP_lower, GPP_upper,
            ER, ER_lower, ER_upper, K600, K600_lower, K600_upper,
            converged, message
        """
        days = list(aligned_df.groupby(day_column))
        logger.info(f"Fitting metabolism for {len(days)} days")

        rows = []
        for day, day_df in tqdm(days, desc="Fitting days", unit="day"):
            rows.append(self.fit_day(day_df, date=pd.Timestamp(day)))

        results = pd.DataFrame(rows)
        if results.empty:
            return results

        n_failed = int((~results["converged"]).sum())
        if n_failed:
            logger.warning(f"{n_failed} of {len(results)} days did not produce a usable fit")
        logger.info(f"Metabolism fit complete: {len(results) - n_failed} usable days")
        return results.sort_values("date").reset_index(drop=True)

    def predict_do(self, aligned_df, daily_df, day_column="solar.date"):
        """Modelled DO for each fitted day, for observed-vs-modelled diagnostics."""
        estimates = daily_df.set_index("date")
        frames = []
        for day, day_df in aligned_df.groupby(day_column):
            day = pd.Timestamp(day)
            if day not in estimates.index:
                continue
            row = estimates.loc[day]
            params = [row[name] for name in PARAMETERS]
            if np.isnan(params).any():
                continue
            day_df = day_df.sort_values("solar.time")
            do_obs, light, depth, do_sat, temp_water = self._day_arrays(day_df)
            frames.append(pd.DataFrame({
                "solar.time": day_df["solar.time"].values,
                "DO.obs": do_obs,
                "DO.mod": self.simulate_do(params, do_obs[0], light, depth, do_sat, temp_water),
            }))

        if not frames:
            return pd.DataFrame(columns=["solar.time", "DO.obs", "DO.mod"])
        return pd.concat(frames, ignore_index=True)
