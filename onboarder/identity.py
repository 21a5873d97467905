"""
ONBOARDER Identity

Version and display constants shared by the CLI and the package root.
"""

__version__ = "1.0.0"
__codename__ = "ONBOARDER"
__tagline__ = "Catalog onboarding for GitHub organizations"

BANNER = r"""
  ___  _ __  | |__   ___   __ _ _ __ __| | ___ _ __
 / _ \| '_ \ | '_ \ / _ \ / _` | '__/ _` |/ _ \ '__|
| (_) | | | || |_) | (_) | (_| | | | (_| |  __/ |
 \___/|_| |_||_.__/ \___/ \__,_|_|  \__,_|\___|_|
"""
