"""Main module for the jira-pulse sync service."""

from jira_pulse.app import main

if __name__ == "__main__":
    main()
