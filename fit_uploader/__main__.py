from fit_uploader.cli import main

main()
