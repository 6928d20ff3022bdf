from setuptools import setup, find_packages

package_name = 'kite_dynamics'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['tests']),
    install_requires=[
        'setuptools',
        'numpy',
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    author='Kite Simulator Team',
    author_email='kite@example.com',
    description='Pure Python two-line kite flight dynamics library',
    license='MIT',
    python_requires='>=3.8',
    tests_require=['pytest'],
)
