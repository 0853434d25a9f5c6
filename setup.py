import re
from ast import literal_eval
from codecs import open

from setuptools import setup

_version_re = re.compile(r'__version__\s+=\s+(.*)')

with open('gitlabbulk/__init__.py', 'rb') as f:
    version = str(literal_eval(_version_re.search(
        f.read().decode('utf-8')).group(1)))

with open('README.rst', 'r', 'utf-8') as f:
    readme = f.read()
with open('HISTORY.rst', 'r', 'utf-8') as f:
    history = f.read()

setup(
    name='gitlabbulk',
    version=version,
    url='https://github.com/gitlabbulk/gitlabbulk',
    license='AGPL 3',
    author='gitlabbulk contributors',
    description='Rate-limited bulk operations for GitLab groups and projects.',
    long_description=readme + '\n\n' + history,
    include_package_data=True,
    zip_safe=False,
    python_requires='>=3.9',
    packages=[
        'gitlabbulk',
        'gitlabbulk.bulk',
        'gitlabbulk.cli',
        'gitlabbulk.workers',
    ],
    entry_points={
        'console_scripts': [
            'gitlabbulk = gitlabbulk.cli.gitlabbulk:main',
        ],
    },
    install_requires=[
        'requests>=2.25.0,<3.0.0',
        'urllib3>=1.26.0',
        'tqdm>=4.0.0',
        'schema>=0.7.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'responses>=0.20.0',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'Natural Language :: English',
        'License :: OSI Approved :: GNU Affero General Public License v3',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
    ]
)
