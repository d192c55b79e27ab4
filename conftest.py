pytest_plugins = ['trio_sentinel.testing_utils']
