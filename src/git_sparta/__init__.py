"""git-sparta - attribute-tagged sparse checkouts of git submodules."""

__version__ = "0.3.0"
