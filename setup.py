from setuptools import find_packages, setup

package_name = 'trajectory_mpc'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    data_files=[
        ('share/' + package_name + '/config', [
            'config/controller.yaml',
        ]),
    ],
    install_requires=['setuptools', 'numpy', 'casadi', 'PyYAML'],
    extras_require={
        'test': ['pytest'],
        'plot': ['matplotlib'],
    },
    python_requires='>=3.8',
    zip_safe=True,
    description='Receding-horizon (MPC) trajectory controller for a simulated car',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'trajectory_controller = trajectory_mpc.controller:main',
        ],
    },
)
