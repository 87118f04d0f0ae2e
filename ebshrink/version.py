"""Version information for ebshrink."""

__version__ = "0.1.0"
__author__ = "ebshrink contributors"
__email__ = "ebshrink@users.noreply.github.com"
__description__ = (
    "Empirical Bayes shrinkage for success/trial data: beta-binomial priors, "
    "credible intervals, FDR-controlled testing and Monte Carlo calibration"
)
