"""
Concrete units, built by factory functions from small declarative records.
"""

from wellwell.units.apps import AppSpec, make_app_unit
from wellwell.units.defaults import default_units, make_homebin_unit
from wellwell.units.packages import PackageManagerSpec, make_package_manager_unit
from wellwell.units.resolvers import make_resolver_unit
from wellwell.units.shell import ShellConfigSpec, make_shell_config_unit

__all__ = [
    "AppSpec",
    "PackageManagerSpec",
    "ShellConfigSpec",
    "default_units",
    "make_app_unit",
    "make_homebin_unit",
    "make_package_manager_unit",
    "make_resolver_unit",
    "make_shell_config_unit",
]
