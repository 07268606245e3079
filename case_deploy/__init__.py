"""
case-deploy: resumable deployment of config lines to a tars program account.
"""

__version__ = "0.1.0"
