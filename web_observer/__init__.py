"""
Web observer components.

This package contains modular pieces for encoding a page's accessibility
tree, resolving natural-language instructions to element locators through a
language model, and delegating actions to a remote execution session.
"""

__version__ = "0.3.0"
