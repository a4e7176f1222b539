"""Starter project.

Seeded into an empty registry so a fresh install has something to run.
"""

DEFAULT_PROJECT_NAME = "My First Project"

DEFAULT_SOURCE_CODE = '''# Write a function to test
def calculate_factorial(n):
    if n < 0:
        return None
    if n in (0, 1):
        return 1
    return n * calculate_factorial(n - 1)
'''

DEFAULT_TEST_CODE = '''# Run "testbench generate" to write tests with AI,
# or write your own here using describe(), it() and expect().

@describe("Initial Test")
def _():
    @it("should be true")
    def _():
        expect(True).to_be(True)
'''

NEW_PROJECT_SOURCE_CODE = "# New function...\n"
