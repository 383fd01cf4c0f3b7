"""
BBC-X — assembler, linker and word machine for the BBC-X teaching language.

Source text is parsed line by line, assembled into a symbol table and code
map, linked into a 128-word memory image and run by an accumulator machine
whose registers are the low words of memory.
"""
