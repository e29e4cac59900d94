import os
import sys

sys.path.insert(0, os.path.abspath('..'))

import binlogtime  # noqa


#
# Project settings
#

project = 'binlogtime'
copyright = '2026, binlogtime developers'
version = binlogtime.__version__
release = version

#
# Extensions
#

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.coverage',
]

autodoc_member_order = 'bysource'

#
# Files and paths
#

master_doc = 'index'
templates_path = ['_templates']
source_suffix = '.rst'
exclude_patterns = ['build']


#
# Output
#

pygments_style = 'sphinx'
html_theme = 'default'
