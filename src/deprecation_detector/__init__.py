"""
deprecation_detector - Find usages of deprecated PHP code

Builds a rule set of deprecated classes, interfaces and methods from a
project's dependencies (composer.lock), a library source tree or a rule
file, then checks application sources against it, following inheritance
so that calls and overrides through subclasses are caught too.
"""

__version__ = "0.1.0"
