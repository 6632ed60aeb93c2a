"""
Reference components loadable with ``module:`` locators.
"""
