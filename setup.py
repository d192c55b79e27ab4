import setuptools

setuptools.setup(
    name='trio_sentinel',
    version='0.1.0',
    author='Omnidots B.V.',
    author_email='support@omnidots.com',
    description='Redis Sentinel master discovery and connection pooling for Trio.',
    license='MIT',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3.7',
        'Programming Language :: Python :: 3.8',
    ],
    packages=['trio_sentinel'],
    python_requires='>=3.7',
    install_requires=[
        'hiredis',
        'trio',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-trio',
        ],
    },
)
