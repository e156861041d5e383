from setuptools import setup, find_namespace_packages

setup(
    name='toolfetch',
    version='0.1.0',
    description='Fetches platform-specific tools from the web and GitHub into a project',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['toolfetch', 'toolfetch.*']),
    python_requires='>=3.10.12',
    install_requires=[
        'aiohttp',
        'aiofiles',
        'platformdirs',
        'PyYAML',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest<9',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'toolfetch=toolfetch.cli:main',
        ],
    },
    # Include other metadata as needed
)
