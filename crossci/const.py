DEFAULT_WORKFLOW_FILE = 'crossci.yml'
CONTAINER_WORKDIR = '/workspace'

COLOR_ENV = {
    'CLICOLOR_FORCE': '1',
    'FORCE_COLOR': '1',
    'CARGO_TERM_COLOR': 'always',
}
NO_COLOR_ENV = {
    'NO_COLOR': '1',
    'CARGO_TERM_COLOR': 'never',
}

# Characters of step output kept in reports
OUTPUT_TAIL = 4000
