from setuptools import find_packages, setup


def parse_requirements():
    with open('requirements.txt', 'r') as f:
        return [r if not r.startswith('git') else '{1} @ {0}'.format(*r.split('#egg=', 1))
                for r in f.read().splitlines() if r]


setup(
    name='chamadeploy',
    version='0.1.0',
    description='Ordered deployment of the UserRegistry and Chama contracts',
    license='MIT',
    python_requires='>=3.8,<4',
    install_requires=parse_requirements(),
    extras_require={
        'test': ['pytest'],
    },
    include_package_data=True,
    packages=find_packages('src'),
    package_dir={'': 'src'},
    entry_points={
        'console_scripts': [
            'chamadeploy=chamadeploy.__main__:cli',
        ],
    },
)
