"""Static metadata describing LiveQuiz."""

APP_NAME = "LiveQuiz"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "LiveQuiz is a classroom quiz server. A host screen shows the questions and "
    "sets the pace, students join from their own devices and answer live, and a "
    "teacher dashboard keeps the results of every finished game."
)
