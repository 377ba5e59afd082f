from setuptools import setup, find_packages

setup(
    name='dd4hep_layer_builder',
    version='0.1',
    packages=find_packages(exclude=['tests', 'tests.*', 'analysis_scripts']),
    install_requires=[
        'uproot',
        'numpy',
        'hist',
        'awkward',
        'matplotlib',
        'mplhep'
    ],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.8',
    author='Dimitris Ntounis',
    author_email='dntounis@stanford.edu',
    description='Builder of tracking layers from dd4hep detector elements',
)
