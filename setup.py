from setuptools import setup, find_namespace_packages
from pathlib import Path

package_name = 'confluent-resource-operator'
description = (
    'A Kubernetes Operator that converges Confluent Platform topics and '
    'role bindings to their declared state.'
)
author = 'confluent-resource-operator developers'
author_email = 'confluent-resource-operator@users.noreply.github.com'
license = 'MIT'
url = 'https://github.com/confluent-resource-operator/confluent-resource-operator'
pypi_classifiers = [
    'Development Status :: 4 - Beta',
    'License :: OSI Approved :: MIT License',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
]
keywords = ['kafka', 'confluent', 'kubernetes', 'operator']
readme = Path(__file__).parent / 'README.rst'

# Core dependencies
install_requires = [
    'kopf>=1.37',
    'kubernetes>=29.0',
    'structlog>=24.1',
]

# Test dependencies
tests_require = [
    'pytest>=8.0',
    'pyyaml>=6.0',
]
tests_require += install_requires

# Optional dependencies (like for dev)
extras_require = {
    # For development environments
    'dev': tests_require,
}

# Setup-time dependencies
setup_requires = [
    'setuptools_scm',
]

setup(
    name=package_name,
    description=description,
    long_description=readme.read_text(),
    long_description_content_type='text/x-rst',
    author=author,
    author_email=author_email,
    url=url,
    license=license,
    classifiers=pypi_classifiers,
    keywords=keywords,
    package_dir={'': 'src'},
    packages=find_namespace_packages(
        where='src', include=['confluentresourceoperator*']
    ),
    python_requires='>=3.10',
    install_requires=install_requires,
    tests_require=tests_require,
    setup_requires=setup_requires,
    extras_require=extras_require,
    use_scm_version={'fallback_version': '0.1.0'},
    include_package_data=True
)
