# Sphinx configuration for the torch_cqt documentation.
#
# Build with:  sphinx-build -b html docs/source docs/build

import os
import sys

# Make torch_cqt importable without installation
sys.path.insert(0, os.path.abspath('../..'))

import torch_cqt  # noqa: E402

# -- Project -----------------------------------------------------------------
project = 'torch_cqt'
author = torch_cqt.__author__
copyright = f'2026, {author}'
release = version = torch_cqt.__version__

# -- Extensions --------------------------------------------------------------
extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',          # NumPy-style docstrings
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx.ext.mathjax',           # Kernel and window formulas
    'sphinx_autodoc_typehints',
    'myst_parser',                  # README.md
]

napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_include_init_with_doc = True
napoleon_use_rtype = True

autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'undoc-members': True,
}
autodoc_typehints = 'description'

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}
master_doc = 'index'
exclude_patterns = []

# -- HTML --------------------------------------------------------------------
html_theme = 'sphinx_rtd_theme'
html_theme_options = {
    'navigation_depth': 3,
    'collapse_navigation': False,
}
html_title = f'{project} v{version}'

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'torch': ('https://pytorch.org/docs/stable/', None),
    'numpy': ('https://numpy.org/doc/stable/', None),
    'scipy': ('https://docs.scipy.org/doc/scipy/', None),
    'matplotlib': ('https://matplotlib.org/stable/', None),
}
