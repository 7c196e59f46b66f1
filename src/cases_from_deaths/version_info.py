# src/cases_from_deaths/version_info.py
VERSION_INT = 0, 2, 0
VERSION = '.'.join([str(x) for x in VERSION_INT])
