"""rotguard - re-read cold files and detect silent corruption between runs."""

__version__ = "0.3.0"
