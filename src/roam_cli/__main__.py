from roam_cli import main

main(prog_name="roam-cli")
