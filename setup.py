#
from setuptools import setup, find_namespace_packages

def get_version():
    """
    Get version number from the cases_from_deaths package.

    The easiest way would be to just ``import cases_from_deaths``, but note that
    this may fail if the dependencies have not been installed yet. Instead,
    we've put the version number in a simple version_info module, that we'll
    import here by temporarily adding the package directory to the pythonpath
    using sys.path.
    """
    import os
    import sys

    sys.path.append(os.path.abspath(os.path.join('src', 'cases_from_deaths')))
    from version_info import VERSION as version
    sys.path.pop()

    return version

def get_readme():
    """
    Load README.md text for use as description.
    """
    with open('README.md') as f:
        return f.read()

setup(
    # Module name (lowercase)
    name='cases_from_deaths',

    # Version
    version=get_version(),

    description='Estimate current cases from recently reported deaths by back-calculation and projection.',

    long_description=get_readme(),

    long_description_content_type='text/markdown',

    license='MIT license',

    url='',

    python_requires='>=3.9',

    # Packages to include
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=('cases_from_deaths', 'cases_from_deaths.*')),

    # List of dependencies
    install_requires=[
        # Dependencies go here!
        'numpy',
        'pandas',
        'scipy',
        'joblib',
    ],
    extras_require={
        'dev': [
            # Flake8 for code style checking
            'flake8>=3',
            'pytest',
            'pytest-cov',
        ],
    },
)
