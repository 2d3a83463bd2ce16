import time

import numpy as np

from binsampling.densities import Gaussian
from binsampling.sampling import BinSamplingDensity
from binsampling.variables import RealVar


def _make_density(nbins: int = 50, epsilon: float = 1e-4):
    x = RealVar("x", 0.0, -5.0, 5.0, nbins=nbins)
    gauss = Gaussian("gauss", x, mean=0.3, sigma=0.4)
    return x, BinSamplingDensity("gauss_binned", "binned gauss", x, gauss, epsilon)


# -----------------------
# ASV benchmark entrypoint
# -----------------------
class TimeBinSamplingBase:
    """
    benchmark binsampling.sampling.BinSamplingDensity on a narrow Gaussian.
    """
    xs = np.random.default_rng(42).normal(0.3, 1.0, 2_000)

    def setup(self, *args):
        self.x, self.binned = _make_density()


class TimeEvaluateBatch(TimeBinSamplingBase):
    """
    benchmark BinSamplingDensity.evaluate_batch() with and without per-bin memoization.
    """
    params = [[False, True]]
    param_names = ["memoize_bins"]

    def time_evaluate_batch(self, memoize_bins):
        self.binned.evaluate_batch(self.xs, {self.x}, memoize_bins=memoize_bins)


class TimeEvaluateRule(TimeBinSamplingBase):
    """
    benchmark BinSamplingDensity.evaluate() for the available quadrature rules.
    """
    params = [["gk21", "gk15", "trapezoid"]]
    param_names = ["rule"]

    def setup(self, rule):
        super().setup()
        self.binned.integrator().set_options(rule=rule)

    def time_evaluate(self, rule):
        for v in self.xs[:200]:
            self.x.set_val(float(np.clip(v, self.x.min, self.x.max)))
            self.binned.evaluate({self.x})


class TimeEvaluateEpsilon(TimeBinSamplingBase):
    """
    benchmark BinSamplingDensity.evaluate_batch() for several precision targets.
    """
    params = [[1e-3, 1e-4, 1e-6, 1e-8]]
    param_names = ["epsilon"]

    def setup(self, epsilon):
        self.x, self.binned = _make_density(epsilon=epsilon)

    def time_evaluate_batch(self, epsilon):
        self.binned.evaluate_batch(self.xs[:500], {self.x})


def main():
    x, binned = _make_density()
    xs = TimeBinSamplingBase.xs

    n_repeat = 5
    for memoize in (False, True):
        t0 = time.perf_counter()
        for _ in range(n_repeat):
            binned.evaluate_batch(xs, {x}, memoize_bins=memoize)
        t1 = time.perf_counter()
        print(f"N={len(xs)} memoize_bins={memoize} repeat={n_repeat} avg={(t1 - t0) / n_repeat:.6f}s")


if __name__ == "__main__":
    main()
