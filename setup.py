from setuptools import find_packages, setup
import sys

with open('requirements.txt', 'r') as file:
    requirements = [line.strip() for line in file if line.strip()]

if sys.platform != 'win32':
    requirements.append('uvloop')

extra_require = {
    'test': [
        'pytest',
        'pytest-asyncio',
    ]
}

packages = find_packages(include=['tramway', 'tramway.*'])

setup(
    name='tramway',
    version='0.1.0',
    description='A websocket echo server built on asyncio',
    packages=packages,
    python_requires='>=3.8.0',
    install_requires=requirements,
    extras_require=extra_require,
    entry_points={
        'console_scripts': ['tramway=tramway.__main__:main'],
    },
)
