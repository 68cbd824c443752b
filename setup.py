"""Install the forward-auth gateway."""

from setuptools import setup, find_packages

setup(
    name='forwardauth',
    version='0.1.0',
    packages=find_packages(exclude=['*tests*']),
    package_data={'forwardauth': ['static/*']},
    python_requires='>=3.8',
    install_requires=[
        "flask>=2.2",
        "werkzeug>=2.2",
        "pyjwt>=2.0",
        "redis>=4.0",
        "fakeredis>=2.0",
        "pytz",
        "click"
    ],
    extras_require={
        'test': [
            "pytest"
        ]
    },
    entry_points={
        'console_scripts': [
            'generate-token=forwardauth.generate_token:generate_token'
        ]
    },
    zip_safe=False
)
