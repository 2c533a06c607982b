"""Configuration models, validation, merging and storage, plus app state and debug aids."""